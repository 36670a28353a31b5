from datetime import datetime
from typing import Optional
import pytz
from bookies.config import settings

LOCAL_TZ = pytz.timezone(settings.timezone)

def now_local() -> datetime:
    """Get current datetime in the configured library timezone."""
    return datetime.now(LOCAL_TZ)

def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """Attach the library timezone to naive datetimes read back from SQLite."""
    if value is None or value.tzinfo is not None:
        return value
    return LOCAL_TZ.localize(value)
