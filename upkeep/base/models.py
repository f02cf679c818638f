from datetime import datetime, timezone

from sqlalchemy import DateTime, Dialect, TypeDecorator
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow(_: object = None) -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Stores aware datetimes as naive UTC, so lexical and temporal order agree.

    Naive datetimes are refused on the way in; every value read back is UTC.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(
        self, value: datetime | None, dialect: Dialect
    ) -> datetime | None:
        if value is None:
            return None
        if value.utcoffset() is None:
            raise TypeError(f"Refusing to store naive datetime {value!r}")
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(
        self, value: datetime | None, dialect: Dialect
    ) -> datetime | None:
        return None if value is None else value.replace(tzinfo=timezone.utc)


class BaseDbModel(DeclarativeBase):
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=_utcnow)


class UpdatedAtMixin:
    updated_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), onupdate=_utcnow
    )
