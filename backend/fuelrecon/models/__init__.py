from .stations import Station, StationDay, STATION_TYPES
from .readings import MeterReading, GaugeReading, DAY_LEDGER
from .shifts import Shift, SHIFT_STATUSES
from .sales import Transaction, GasSupply, PAYMENT_TYPES, PAYMENT_GROUPS
from .audit import AuditLogEntry, AUDIT_ACTIONS, AUDIT_ENTITY_TYPES
from .anomalies import (
    NozzleAnomaly, DailyAnomaly, ShiftReconciliation,
    ANOMALY_SEVERITIES, VARIANCE_STATUSES,
)

__all__ = [
    'Station', 'StationDay', 'STATION_TYPES',
    'MeterReading', 'GaugeReading', 'DAY_LEDGER',
    'Shift', 'SHIFT_STATUSES',
    'Transaction', 'GasSupply', 'PAYMENT_TYPES', 'PAYMENT_GROUPS',
    'AuditLogEntry', 'AUDIT_ACTIONS', 'AUDIT_ENTITY_TYPES',
    'NozzleAnomaly', 'DailyAnomaly', 'ShiftReconciliation',
    'ANOMALY_SEVERITIES', 'VARIANCE_STATUSES',
]
