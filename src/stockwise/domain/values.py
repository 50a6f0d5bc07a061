from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Optional

from stockwise.domain.errors import ValidationError


def to_decimal(value: object, field: str = "value") -> Decimal:
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number.")
    if isinstance(value, Decimal):
        d = value
    else:
        # floats go through str() so 0.1 stays 0.1
        try:
            d = Decimal(str(value).strip())
        except InvalidOperation as e:
            raise ValidationError(f"{field} must be a number. Received: {value!r}") from e
    if not d.is_finite():
        raise ValidationError(f"{field} must be a finite number.")
    return d


def from_db_decimal(raw: object) -> Decimal:
    if raw is None:
        return Decimal("0")
    return Decimal(str(raw))


def parse_date(value: object, field: str = "date") -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raw = str(value).strip()
    try:
        if len(raw) > 10:
            # full timestamps only: YYYY-MM-DD HH:MM:SS or YYYY-MM-DDTHH:MM:SS
            if raw[10] not in " T":
                raise ValueError(raw)
            return datetime.fromisoformat(raw).date()
        return date.fromisoformat(raw)
    except ValueError as e:
        raise ValidationError(f"{field} must be YYYY-MM-DD. Received: {value!r}") from e


def to_iso_timestamp(dt: datetime) -> str:
    return dt.replace(microsecond=0).isoformat(sep=" ")
