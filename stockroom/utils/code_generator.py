from __future__ import annotations

import re
import secrets
from datetime import datetime

from .timezone_utils import TimezoneUtils

__all__ = [
    "generate_document_number",
    "generate_order_number",
    "generate_invoice_number",
    "generate_po_number",
    "parse_document_number",
]

BASE36_CHARS = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
SUFFIX_LENGTH = 5

ORDER_PREFIX = "SO"
INVOICE_PREFIX = "INV"
PURCHASE_ORDER_PREFIX = "PO"

_DOCUMENT_PATTERN = re.compile(r"^(?P<prefix>[A-Z]+)-(?P<date>\d{8})-(?P<suffix>[0-9A-Z]{5})$")


def _random_suffix(length: int = SUFFIX_LENGTH) -> str:
    return "".join(secrets.choice(BASE36_CHARS) for _ in range(length))


def generate_document_number(prefix: str, *, when: datetime | None = None) -> str:
    """PREFIX-YYYYMMDD-XXXXX with a random base36 tail."""
    stamp = (when or TimezoneUtils.utc_now()).strftime("%Y%m%d")
    return f"{prefix}-{stamp}-{_random_suffix()}"


def generate_order_number(when: datetime | None = None) -> str:
    return generate_document_number(ORDER_PREFIX, when=when)


def generate_invoice_number(when: datetime | None = None) -> str:
    return generate_document_number(INVOICE_PREFIX, when=when)


def generate_po_number(when: datetime | None = None) -> str:
    return generate_document_number(PURCHASE_ORDER_PREFIX, when=when)


def parse_document_number(code: str) -> dict | None:
    match = _DOCUMENT_PATTERN.match(code or "")
    if not match:
        return None
    return match.groupdict()
