# coursemax/logic/commission.py
import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from ..config import DEFAULT_DELIVERY_COMMISSION_PERCENT, TOP_DRIVERS_LIMIT
from ..errors import ValidationFailure
from ..utils.helpers import parse_iso_datetime
from ..utils.money import D, round_money

logger = logging.getLogger(__name__)

PERIODS = ("day", "week", "month", "year")
COMMISSION_STATUSES = ("pending", "paid", "cancelled")


def calculate_delivery_commission(delivery_fee, commission_percent=DEFAULT_DELIVERY_COMMISSION_PERCENT):
    """Split a delivery fee between the platform and the driver.

    platform_amount = fee x percent / 100 and driver_amount = fee - platform_amount,
    both to the cent, so the two always add back up to the fee.
    """
    fee = D(delivery_fee)
    percent = D(commission_percent)
    if fee < 0:
        raise ValidationFailure("delivery_fee must not be negative")
    if percent < 0 or percent > 100:
        raise ValidationFailure("commission_percent must be between 0 and 100")

    platform_amount = round_money(fee * percent / 100)
    return {
        "delivery_fee": round_money(fee),
        "commission_percent": percent,
        "platform_amount": platform_amount,
        "driver_amount": round_money(fee) - platform_amount,
    }


def resolve_commission_percent(setting_value):
    """Percent stored in platform_settings (JSON number or string), else the default."""
    if setting_value in (None, ""):
        return DEFAULT_DELIVERY_COMMISSION_PERCENT
    try:
        return D(setting_value)
    except Exception:
        logger.warning(f"Unreadable commission percent setting {setting_value!r}, using default")
        return DEFAULT_DELIVERY_COMMISSION_PERCENT


def period_bounds(period: str, now: datetime = None):
    """Return (period_start, period_end) UTC for a stats period.

    - day: since midnight today
    - week: since midnight last Sunday
    - month: since the 1st of the current month (also for unknown periods)
    - year: since January 1st
    """
    now = now or datetime.now(timezone.utc)
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "day":
        return (midnight, now)
    if period == "week":
        # weekday(): Monday=0 ... Sunday=6
        days_since_sunday = (now.weekday() + 1) % 7
        return (midnight - timedelta(days=days_since_sunday), now)
    if period == "year":
        return (midnight.replace(month=1, day=1), now)
    return (midnight.replace(day=1), now)


def resolve_range(period=None, start_date=None, end_date=None, now=None):
    """Explicit start/end win over the named period; both must be given."""
    if start_date and end_date:
        try:
            start, end = parse_iso_datetime(start_date), parse_iso_datetime(end_date)
        except ValueError as e:
            raise ValidationFailure("start_date and end_date must be ISO dates") from e
        if start > end:
            raise ValidationFailure("start_date must be before end_date")
        return start, end
    return period_bounds(period or "month", now)


def _bucket_key(created_at, by_hour):
    moment = parse_iso_datetime(created_at)
    if by_hour:
        return f"{moment.hour}:00"
    return moment.date().isoformat()


def aggregate_commission_stats(records, period="month", driver_id=None):
    """Totals, per-status counts, per-bucket sums and top drivers over persisted commission records."""
    totals = {"delivery_fee": Decimal("0"), "platform_amount": Decimal("0"), "driver_amount": Decimal("0")}
    percent_sum = Decimal("0")
    by_status = {status: 0 for status in COMMISSION_STATUSES}
    by_period = {}
    drivers = {}

    for record in records:
        fee = D(record.get("delivery_fee") or 0)
        platform = D(record.get("platform_amount") or 0)
        driver_amount = D(record.get("driver_amount") or 0)
        totals["delivery_fee"] += fee
        totals["platform_amount"] += platform
        totals["driver_amount"] += driver_amount
        percent_sum += D(record.get("commission_percent") or 0)

        status = record.get("status") or "pending"
        by_status[status] = by_status.get(status, 0) + 1

        if record.get("created_at"):
            key = _bucket_key(record["created_at"], by_hour=(period == "day"))
            bucket = by_period.setdefault(key, defaultdict(Decimal, count=0))
            bucket["count"] += 1
            bucket["total_platform_amount"] += platform
            bucket["total_driver_amount"] += driver_amount
            bucket["total_delivery_fees"] += fee

        if not driver_id and record.get("driver_id"):
            profile = record.get("profiles") or {}
            entry = drivers.setdefault(record["driver_id"], {
                "driver_id": record["driver_id"],
                "name": f"{profile.get('first_name') or ''} {profile.get('last_name') or ''}".strip(),
                "email": profile.get("email"),
                "total_amount": Decimal("0"),
                "count": 0,
            })
            entry["total_amount"] += driver_amount
            entry["count"] += 1

    count = len(records)
    top_drivers = sorted(drivers.values(), key=lambda d: d["total_amount"], reverse=True)[:TOP_DRIVERS_LIMIT]
    for entry in top_drivers:
        entry["total_amount"] = round_money(entry["total_amount"])

    return {
        "total_commissions": count,
        "total_delivery_fees": round_money(totals["delivery_fee"]),
        "total_platform_amount": round_money(totals["platform_amount"]),
        "total_driver_amount": round_money(totals["driver_amount"]),
        "average_commission_percent": round_money(percent_sum / count) if count else Decimal("0.00"),
        "by_status": by_status,
        "by_period": {
            key: {
                "count": bucket["count"],
                "total_platform_amount": round_money(bucket["total_platform_amount"]),
                "total_driver_amount": round_money(bucket["total_driver_amount"]),
                "total_delivery_fees": round_money(bucket["total_delivery_fees"]),
            }
            for key, bucket in by_period.items()
        },
        "top_drivers": top_drivers,
    }
