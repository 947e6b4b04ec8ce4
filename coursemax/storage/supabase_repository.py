# coursemax/storage/supabase_repository.py
"""
Read-side lookups and commission records, through the Supabase service client.

Any client or PostgREST failure is reported as ``DependencyUnavailable``; an
empty result is not a failure and comes back as None or [].
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..errors import DependencyUnavailable

logger = logging.getLogger(__name__)

DRIVER_ROLE = "livreur"


class SupabaseRepository:
    def __init__(self, client):
        self.client = client

    def _run(self, what, query):
        if self.client is None:
            raise DependencyUnavailable(detail="Supabase client not initialized")
        try:
            return query().data
        except Exception as e:
            logger.error(f"❌ Supabase {what} failed: {e}", exc_info=True)
            raise DependencyUnavailable(detail=f"{what} unavailable") from e

    # --- stores / orders ---
    def get_store(self, store_id) -> Optional[Dict[str, Any]]:
        rows = self._run(
            "store lookup",
            lambda: self.client.table("stores")
            .select("id, name, address, city, latitude, longitude")
            .eq("id", store_id)
            .limit(1)
            .execute(),
        )
        return rows[0] if rows else None

    def attach_delivery_quote(self, order_id, delivery_fee, estimated_delivery: datetime) -> bool:
        """Record the computed fee on an order. Best-effort: a failure is logged, not raised."""
        try:
            self._run(
                "order update",
                lambda: self.client.table("orders")
                .update({"delivery_fee": float(delivery_fee), "estimated_delivery": estimated_delivery.isoformat()})
                .eq("id", order_id)
                .execute(),
            )
            return True
        except DependencyUnavailable:
            logger.warning(f"Delivery fee not saved on order {order_id}")
            return False

    def list_recent_orders(self, store_id, status: str, since: datetime) -> List[Dict[str, Any]]:
        return self._run(
            "order grouping",
            lambda: self.client.table("orders")
            .select("id, order_number, delivery_address, delivery_city, delivery_fee, total_amount, created_at")
            .eq("store_id", store_id)
            .eq("status", status)
            .gte("created_at", since.isoformat())
            .order("created_at")
            .execute(),
        ) or []

    def get_order_delivery_fee(self, order_id):
        rows = self._run(
            "order lookup",
            lambda: self.client.table("orders").select("id, delivery_fee").eq("id", order_id).limit(1).execute(),
        )
        if not rows:
            return None
        return rows[0].get("delivery_fee")

    # --- drivers ---
    def list_active_drivers(self) -> List[Dict[str, Any]]:
        return self._run(
            "driver lookup",
            lambda: self.client.table("profiles")
            .select("user_id, first_name, last_name, phone, latitude, longitude")
            .eq("role", DRIVER_ROLE)
            .eq("is_active", True)
            .not_.is_("latitude", "null")
            .not_.is_("longitude", "null")
            .execute(),
        ) or []

    def get_driver_token(self, driver_id) -> Optional[str]:
        rows = self._run(
            "push token lookup",
            lambda: self.client.table("profiles").select("fcm_token").eq("user_id", driver_id).limit(1).execute(),
        )
        return rows[0].get("fcm_token") if rows else None

    # --- platform settings / commissions ---
    def get_platform_setting(self, key):
        rows = self._run(
            "platform setting lookup",
            lambda: self.client.table("platform_settings").select("value").eq("key", key).limit(1).execute(),
        )
        return rows[0].get("value") if rows else None

    def upsert_commission(self, record: Dict[str, Any]) -> Dict[str, Any]:
        rows = self._run(
            "commission upsert",
            lambda: self.client.table("delivery_commissions").upsert(record, on_conflict="order_id").execute(),
        )
        return rows[0] if rows else record

    def list_commissions(self, start: datetime, end: datetime, driver_id=None) -> List[Dict[str, Any]]:
        def query():
            q = (
                self.client.table("delivery_commissions")
                .select("id, order_id, driver_id, delivery_fee, commission_percent, "
                        "platform_amount, driver_amount, status, created_at, "
                        "profiles(first_name, last_name, email)")
                .gte("created_at", start.isoformat())
                .lte("created_at", end.isoformat())
            )
            if driver_id:
                q = q.eq("driver_id", driver_id)
            return q.order("created_at", desc=True).execute()

        return self._run("commission stats", query) or []
