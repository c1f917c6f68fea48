# backend/fuelrecon/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/fuelrecon.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///fuelrecon.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Discrepancy thresholds (liters / currency units)
    RECON_METER_TXN_LITERS = os.environ.get("RECON_METER_TXN_LITERS", "1")
    RECON_GAUGE_METER_LITERS = os.environ.get("RECON_GAUGE_METER_LITERS", "10")
    RECON_STOCK_LITERS = os.environ.get("RECON_STOCK_LITERS", "10")
    RECON_REVENUE_CURRENCY = os.environ.get("RECON_REVENUE_CURRENCY", "10")

    # Each LPG tank at 100% holds this many liters
    TANK_CAPACITY_LITERS = os.environ.get("TANK_CAPACITY_LITERS", "98")
    # LPG intake: 1 kg = 1.85 liters
    KG_TO_LITERS = os.environ.get("KG_TO_LITERS", "1.85")

    # Business dates derived from timestamps use the station's local day
    STATION_TIMEZONE = os.environ.get("STATION_TIMEZONE", "Asia/Bangkok")

    # Closed shifts become read-only for staff after this many hours
    LOCK_AFTER_HOURS = int(os.environ.get("LOCK_AFTER_HOURS", "24"))
    # "1" makes a day closed through the day-level meters read-only for staff at once
    LOCK_CLOSED_DAYS = os.environ.get("LOCK_CLOSED_DAYS", "0") == "1"

    # Per-nozzle sales vs trailing average (percent) and lookback window
    NOZZLE_ANOMALY_WARNING_PERCENT = os.environ.get("NOZZLE_ANOMALY_WARNING_PERCENT", "50")
    NOZZLE_ANOMALY_CRITICAL_PERCENT = os.environ.get("NOZZLE_ANOMALY_CRITICAL_PERCENT", "100")
    NOZZLE_ANOMALY_LOOKBACK_DAYS = int(os.environ.get("NOZZLE_ANOMALY_LOOKBACK_DAYS", "7"))

    # Daily meter vs transaction liters
    DAILY_ANOMALY_WARNING_LITERS = os.environ.get("DAILY_ANOMALY_WARNING_LITERS", "10")
    DAILY_ANOMALY_CRITICAL_LITERS = os.environ.get("DAILY_ANOMALY_CRITICAL_LITERS", "50")

    # Shift cash variance bands (currency): GREEN up to the first, YELLOW up to the second
    CASH_VARIANCE_GREEN = os.environ.get("CASH_VARIANCE_GREEN", "200")
    CASH_VARIANCE_YELLOW = os.environ.get("CASH_VARIANCE_YELLOW", "500")

    # Gauge readings below this percentage produce a warning
    LOW_GAUGE_PERCENTAGE = os.environ.get("LOW_GAUGE_PERCENTAGE", "20")
