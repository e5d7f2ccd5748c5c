from datetime import datetime, timedelta, timezone

IST = timezone(timedelta(hours=5, minutes=30))


def get_ist_now() -> datetime:
    """Current IST time as a naive datetime (how it is stored in the DB)"""
    return datetime.now(IST).replace(tzinfo=None)
