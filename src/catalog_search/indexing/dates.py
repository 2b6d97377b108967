"""Partial date formatting for catalog dates.

Catalog dates are frequently incomplete: only the year of a release may be
known, or the year and month. Both helpers keep the known leading
components and drop the rest.
"""

from __future__ import annotations


def _known(value: int | None) -> bool:
    return value is not None and value > 0


def format_date(year: int | None, month: int | None = None, day: int | None = None) -> str | None:
    """Return ``YYYY``, ``YYYY-MM`` or ``YYYY-MM-DD`` from the known components.

    A day without a month is ignored, and without a year there is no date.

    >>> format_date(1990, 5, None)
    '1990-05'
    >>> format_date(1990, None, 12)
    '1990'
    """
    if not _known(year):
        return None
    text = f"{year:04d}"
    if not _known(month):
        return text
    text += f"-{month:02d}"
    if not _known(day):
        return text
    return text + f"-{day:02d}"


def normalize_date(text: str | None) -> str | None:
    """Trim zeroed trailing components of a ``YYYY-MM-DD`` string.

    >>> normalize_date("1990-00-00")
    '1990'
    >>> normalize_date("1990-07-00")
    '1990-07'
    """
    if text is None:
        return None
    parts = text.strip().split("-")
    try:
        numbers = [int(part) for part in parts[:3] if part != ""]
    except ValueError:
        return text.strip() or None
    year, month, day = (numbers + [None, None, None])[:3]
    return format_date(year, month, day)
