import os

HTTP_PORT = int(os.getenv("HTTP_PORT", "5000"))
# placeholder device address used by the CLI client
API_BASE = os.getenv("API_BASE", "http://10.23.104.60:5000")

TICK_SEC = int(os.getenv("TICK_SEC", "5"))                       # recompute every 5s
AUTO_STOP_AT_TARGET = os.getenv("AUTO_STOP_AT_TARGET", "true").lower() == "true"

BASE_RATE = float(os.getenv("BASE_RATE", "8.00"))                # per kWh
TAX_RATE = float(os.getenv("TAX_RATE", "0.18"))                  # GST
FAST_CHARGE_PREMIUM = float(os.getenv("FAST_CHARGE_PREMIUM", "25"))
PREMIUM_THRESHOLD_KWH = float(os.getenv("PREMIUM_THRESHOLD_KWH", "50"))

BATTERY_CAPACITY_KWH = float(os.getenv("BATTERY_CAPACITY_KWH", "50"))
DEFAULT_BATTERY_START = float(os.getenv("DEFAULT_BATTERY_START", "45"))
DEFAULT_TARGET_BATTERY = float(os.getenv("DEFAULT_TARGET_BATTERY", "80"))

MIN_START_BALANCE = float(os.getenv("MIN_START_BALANCE", "50"))
MAX_ACTIVE_SESSIONS = int(os.getenv("MAX_ACTIVE_SESSIONS", "1"))   # single charger

PAYMENT_FAILURE_RATE = float(os.getenv("PAYMENT_FAILURE_RATE", "0.1"))
PAYMENT_DELAY_SEC = float(os.getenv("PAYMENT_DELAY_SEC", "2"))
EMAIL_FAILURE_RATE = float(os.getenv("EMAIL_FAILURE_RATE", "0.1"))
EMAIL_DELAY_SEC = float(os.getenv("EMAIL_DELAY_SEC", "1.5"))

COMPANY_NAME = os.getenv("COMPANY_NAME", "EV Smart Charger Pvt. Ltd.")
COMPANY_ADDRESS = os.getenv("COMPANY_ADDRESS", "Plot No. 123, Tech Park, Mumbai - 400001")
COMPANY_PHONE = os.getenv("COMPANY_PHONE", "+91 98765 43210")
COMPANY_EMAIL = os.getenv("COMPANY_EMAIL", "billing@evsmartcharger.com")
COMPANY_GST_NUMBER = os.getenv("COMPANY_GST_NUMBER", "GST123456789")
COMPANY_WEBSITE = os.getenv("COMPANY_WEBSITE", "www.evsmartcharger.com")
