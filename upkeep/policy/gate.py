from datetime import datetime, timedelta


def is_due(now: datetime, last_run_at: datetime | None, min_interval: timedelta) -> bool:
    """Return True when maintenance may run again.

    A clock that jumped backwards (``now < last_run_at``) is treated as not due,
    so a skewed clock never forces extra runs.
    """
    if last_run_at is None:
        return True
    elapsed = now - last_run_at
    if elapsed < timedelta(0):
        return False
    return elapsed >= min_interval
