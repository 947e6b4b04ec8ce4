# coursemax/config.py

"""
Central settings for the CourseMax settlement and dispatch service.
Keep the "business rules" that may change over time in this module.

Flask loads every UPPERCASE name defined here into ``app.config``.
"""

import os
from decimal import Decimal

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name, default):
    return os.environ.get(name, str(default)).strip().lower() in ("1", "true", "yes", "on")


# =================================================
# Delivery fee tiers
# =================================================
# (inclusive upper bound in km, fee, tier label). The last tier has no upper
# bound. A distance sitting exactly on a bound belongs to the cheaper tier.
DELIVERY_FEE_TIERS = (
    (3.0, Decimal("5.00"), "0-3 km"),
    (6.0, Decimal("7.00"), "3-6 km"),
    (10.0, Decimal("10.00"), "6-10 km"),
    (None, Decimal("12.00"), "10+ km"),
)

# Above this distance the driver gets a long-distance bonus.
LONG_DISTANCE_THRESHOLD_KM = 15.0
LONG_DISTANCE_BONUS = Decimal("2.00")
LONG_DISTANCE_LABEL_SUFFIX = " (bonus longue distance)"


# =================================================
# Taxes and tips
# =================================================
# Quebec combined rate (GST 5% + QST 9.975%, rounded the way CourseMax bills it).
QUEBEC_TAX_RATE = Decimal("0.15")
QUEBEC_LOCATION_MARKERS = ("quebec", "qc")
DEFAULT_TAX_RATE = Decimal("0.15")

TIP_SUGGESTION_PERCENTAGES = (10, 15, 20)

# legacy | from_merchant | from_driver | on_top
RECEIPT_COMMISSION_POLICY = os.environ.get("RECEIPT_COMMISSION_POLICY", "legacy")
ADMIN_COMMISSION_RATE = Decimal(os.environ.get("ADMIN_COMMISSION_RATE", "0"))


# =================================================
# Driver dispatch
# =================================================
ASSIGNMENT_TTL_SECONDS = int(os.environ.get("ASSIGNMENT_TTL_SECONDS", "300"))
EXPIRY_SWEEP_ENABLED = _env_bool("EXPIRY_SWEEP_ENABLED", True)
EXPIRY_SWEEP_INTERVAL_SECONDS = int(os.environ.get("EXPIRY_SWEEP_INTERVAL_SECONDS", "300"))

# Drivers farther than this from the delivery address are not notified.
DRIVER_SEARCH_RADIUS_KM = float(os.environ.get("DRIVER_SEARCH_RADIUS_KM", "15.0"))

# Confirmed orders of one store created within this window ride together.
ORDER_GROUPING_WINDOW_MINUTES = int(os.environ.get("ORDER_GROUPING_WINDOW_MINUTES", "10"))
ORDER_GROUPING_STATUS = "confirmed"


# =================================================
# Platform commission on delivery fees
# =================================================
# Percentage of the delivery fee kept by the platform. 20.0 means 20%.
DEFAULT_DELIVERY_COMMISSION_PERCENT = Decimal("20.0")
DELIVERY_COMMISSION_SETTING_KEY = "delivery_commission_percent"
TOP_DRIVERS_LIMIT = 10


# =================================================
# Multi-merchant fee distribution
# =================================================
FEE_DISTRIBUTION_METHOD = "proportional"
FEE_DISTRIBUTION_BASE_WEIGHT = Decimal("0.6")
FEE_DISTRIBUTION_DISTANCE_WEIGHT = Decimal("0.3")
FEE_DISTRIBUTION_PRIORITY_WEIGHT = Decimal("0.1")
FEE_DISTRIBUTION_MINIMUM_FEE = Decimal("0.50")
FEE_DISTRIBUTION_MAXIMUM_FEE = Decimal("15.00")
# Flat fee a customer would pay per merchant when ordering separately.
SEPARATE_ORDER_BASE_FEE = Decimal("2.99")


# =================================================
# External services
# =================================================
SUPABASE_URL = os.environ.get("SUPABASE_URL")
SUPABASE_SERVICE_KEY = os.environ.get("SUPABASE_SERVICE_KEY") or os.environ.get("SUPABASE_SERVICE_ROLE_KEY")
DATABASE_URL = os.environ.get("DATABASE_URL")

# mapbox | nominatim
DISTANCE_PROVIDER = os.environ.get("DISTANCE_PROVIDER", "mapbox").lower()
MAPBOX_ACCESS_TOKEN = os.environ.get("MAPBOX_ACCESS_TOKEN", "")
NOMINATIM_USER_AGENT = os.environ.get("NOMINATIM_USER_AGENT", "CourseMaxDispatch/1.0 (support@coursemax.ca)")
DISTANCE_TIMEOUT_SECONDS = float(os.environ.get("DISTANCE_TIMEOUT_SECONDS", "10"))
DISTANCE_MAX_RETRIES = int(os.environ.get("DISTANCE_MAX_RETRIES", "2"))
# Used by the nominatim provider, which has no routing engine.
ASSUMED_DRIVING_SPEED_KMH = float(os.environ.get("ASSUMED_DRIVING_SPEED_KMH", "30"))

# socketio | fcm | log
NOTIFIER = os.environ.get("NOTIFIER", "socketio").lower()
FCM_SERVER_KEY = os.environ.get("FCM_SERVER_KEY", "")
NOTIFICATION_TIMEOUT_SECONDS = float(os.environ.get("NOTIFICATION_TIMEOUT_SECONDS", "5"))

# memory | postgres
ASSIGNMENT_STORE = os.environ.get("ASSIGNMENT_STORE", "postgres" if DATABASE_URL else "memory").lower()

SOCKETIO_ASYNC_MODE = os.environ.get("SOCKETIO_ASYNC_MODE", "eventlet")
