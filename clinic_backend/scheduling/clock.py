from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from clinic_backend.core import config


def local_now() -> datetime:
    """Current wall-clock time in the deployment timezone, as a naive datetime."""
    return datetime.now(ZoneInfo(config.SCHEDULING_TIMEZONE)).replace(tzinfo=None, microsecond=0)


def utc_now() -> datetime:
    """Naive UTC timestamp for ``created_at``/``updated_at`` columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
