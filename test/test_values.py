from datetime import date, datetime

import pytest

from stockwise.domain.errors import ValidationError
from stockwise.domain.values import parse_date


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("2025-01-01", date(2025, 1, 1)),
        (" 2025-01-01 ", date(2025, 1, 1)),
        ("2025-01-01 13:45:00", date(2025, 1, 1)),
        ("2025-01-01T13:45:00", date(2025, 1, 1)),
        (datetime(2025, 1, 1, 8, 0), date(2025, 1, 1)),
        (None, None),
        ("", None),
    ],
)
def test_parse_date_accepts_dates_and_timestamps(raw, expected):
    assert parse_date(raw) == expected


@pytest.mark.parametrize("raw", ["2025-01-011234", "2025-01-01xyz", "2025-01-01 not-a-time", "31/12/2025", "2025-13-01"])
def test_parse_date_rejects_trailing_garbage(raw):
    with pytest.raises(ValidationError):
        parse_date(raw, "Expiry date")
