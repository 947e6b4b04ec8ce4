# coursemax/utils/helpers.py

import json
import logging
import uuid
from datetime import date, datetime, time, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

import psycopg2
from psycopg2.extras import register_uuid
from supabase import Client, create_client

logger = logging.getLogger(__name__)


# --- Supabase ---
def create_supabase_client(url: Optional[str], service_key: Optional[str]) -> Optional[Client]:
    """Service-role client, or None when the credentials are missing or rejected."""
    if not url or not service_key:
        logger.warning("⚠️ SUPABASE_URL / SUPABASE_SERVICE_KEY not set, Supabase features disabled.")
        return None
    try:
        client = create_client(url, service_key)
        logger.info("✅ Supabase client initialized.")
        return client
    except Exception as e:
        logger.error(f"❌ Supabase client initialization failed: {e}")
        return None


# --- DB ---
def make_connection_factory(database_url: Optional[str]):
    """Return a zero-argument callable opening a fresh psycopg2 connection (or None on failure)."""

    def get_db_connection():
        if not database_url:
            logger.error("❌ DATABASE_URL not found.")
            return None
        try:
            conn = psycopg2.connect(database_url)
            register_uuid(None, conn)
            return conn
        except psycopg2.Error as e:
            logger.error(f"❌ Database connection failed: {e}", exc_info=True)
            return None

    return get_db_connection


# --- JSON utils ---
class CustomJSONEncoder(json.JSONEncoder):
    def default(self, obj):
        if isinstance(obj, Decimal):
            return float(obj)
        if isinstance(obj, (datetime, date, time)):
            return obj.isoformat()
        if isinstance(obj, uuid.UUID):
            return str(obj)
        if isinstance(obj, Enum):
            return obj.value
        return super().default(obj)


def serialize_data(data):
    return json.loads(json.dumps(data, cls=CustomJSONEncoder))


def parse_iso_datetime(value) -> Optional[datetime]:
    """Parse '2024-05-01', '2024-05-01T10:00:00' or '...Z' into an aware UTC datetime."""
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
