# enrollment/utils/clock.py
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Timezone-aware current time. Services take ``now`` overrides for tests and sweeps."""
    return datetime.now(timezone.utc)
