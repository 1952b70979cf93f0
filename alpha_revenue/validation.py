#!/usr/bin/env python3
"""
Input validation for wallet addresses and query dates.
Both run before any upstream call is made.
"""

import re
from datetime import date, datetime, timezone
from typing import Optional

from web3 import Web3

from .errors import ValidationError

_ADDRESS_RE = re.compile(r'^0x[a-f0-9]{40}$')
_DATE_RE = re.compile(r'^\d{4}-\d{2}-\d{2}$')
EARLIEST_DATE = date(2020, 1, 1)


def normalize_wallet(address: str) -> str:
    """Trim + lowercase; raise ValidationError unless it is a 0x-prefixed 20-byte hex address"""
    if not isinstance(address, str) or not address.strip():
        raise ValidationError("wallet address is empty")
    normalized = address.strip().lower()
    if not _ADDRESS_RE.match(normalized) or not Web3.is_address(normalized):
        raise ValidationError(f"invalid wallet address: {address.strip()}")
    return normalized


def validate_query_date(value: str, today: Optional[date] = None) -> str:
    """Return the date unchanged if it is YYYY-MM-DD, real, not in the future and not before 2020"""
    if not isinstance(value, str) or not _DATE_RE.match(value.strip()):
        raise ValidationError(f"invalid date format (expected YYYY-MM-DD): {value}")
    value = value.strip()
    try:
        parsed = datetime.strptime(value, '%Y-%m-%d').date()
    except ValueError:
        raise ValidationError(f"invalid calendar date: {value}")
    today = today or datetime.now(timezone.utc).date()
    if parsed > today:
        raise ValidationError(f"date is in the future: {value}")
    if parsed < EARLIEST_DATE:
        raise ValidationError(f"date is before {EARLIEST_DATE.isoformat()}: {value}")
    return value
