from datetime import datetime, timezone


def get_current_utc_time() -> datetime:
    """Timezone-aware current UTC time"""
    return datetime.now(timezone.utc)
