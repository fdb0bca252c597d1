"""
CRM backend - configuration and shared helpers
"""

import os
import hashlib
import secrets
from datetime import datetime, timezone
from typing import Optional
from motor.motor_asyncio import AsyncIOMotorClient
from dotenv import load_dotenv
from pathlib import Path

# Load .env
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# MongoDB
MONGO_URL = os.environ.get('MONGO_URL', 'mongodb://localhost:27017')
DB_NAME = os.environ.get('DB_NAME', 'crm_database')

client = AsyncIOMotorClient(MONGO_URL)
db = client[DB_NAME]

CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*').split(',')

# Edge function receiving push notification intents (optional)
NOTIFY_FUNCTION_URL = os.environ.get('NOTIFY_FUNCTION_URL', '')
NOTIFY_FUNCTION_KEY = os.environ.get('NOTIFY_FUNCTION_KEY', '')

# Financial periods are computed in the business timezone
REPORTING_TIMEZONE = os.environ.get('REPORTING_TIMEZONE', 'Asia/Kolkata')

# "frozen": threshold stored on the request at creation
# "live": current admin count re-read on every vote
PROMOTION_THRESHOLD_MODE = os.environ.get('PROMOTION_THRESHOLD_MODE', 'frozen').lower()

TASK_REMINDER_INTERVAL_HOURS = int(os.environ.get('TASK_REMINDER_INTERVAL_HOURS', '5'))
TASK_MAX_REMINDERS = int(os.environ.get('TASK_MAX_REMINDERS', '6'))

SESSION_TTL_DAYS = int(os.environ.get('SESSION_TTL_DAYS', '7'))
SCHEDULER_ENABLED = os.environ.get('SCHEDULER_ENABLED', 'true').lower() in ('1', 'true', 'yes')


# ==================== HELPERS ====================

def hash_password(password: str) -> str:
    """SHA256 password hash"""
    return hashlib.sha256(password.encode()).hexdigest()

def generate_token() -> str:
    """Secure session token"""
    return secrets.token_urlsafe(32)

def utc_now() -> datetime:
    return datetime.now(timezone.utc)

def to_iso(dt: datetime) -> str:
    """
    Serialise a datetime as a fixed-width UTC ISO string.
    Naive datetimes are taken as UTC. Fixed width keeps string
    comparisons in store queries chronological.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")

def now_iso() -> str:
    """Current UTC time as ISO string"""
    return to_iso(utc_now())

def parse_iso(value) -> Optional[datetime]:
    """
    Parse an ISO timestamp (or pass a datetime through) into an aware UTC datetime.
    Accepts a trailing "Z" and date-only strings. Returns None for empty values.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
