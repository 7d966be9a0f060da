"""
Portuguese fiscal receipt QR (ATCUD) payload parser.

A payload is a ``*``-separated list of ``KEY:VALUE`` tokens, e.g.::

    A:500100144*B:999999990*C:PT*D:FS*E:N*F:20241222*G:FS 1/2*H:JJ3C-2*N:1.32*O:7.06

Two field layouts exist in the wild. In one, ``H`` carries the purchase
time and ``I`` the total; in the other, ``G`` is the document number, ``H``
the ATCUD code and ``N`` / ``O`` the amounts. Both are accepted: a value is
used for whichever meaning it parses as. The parser never raises; fields it
cannot read are simply absent from the draft.
"""
from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Optional

from expense_tracker.schemas.base import ReceiptDraft

logger = logging.getLogger(__name__)

# "Consumidor final": printed when the customer gave no tax id
GENERIC_CUSTOMER_NIF = "999999990"


def is_valid(payload: str) -> bool:
    return payload.startswith("A:") and "*" in payload


def _parse_amount(value: str) -> Optional[float]:
    first = value.split(";")[0].strip()
    try:
        amount = float(first)
    except ValueError:
        return None
    return amount if math.isfinite(amount) else None


def _parse_date(value: str) -> tuple[Optional[str], Optional[str]]:
    """``YYYYMMDD`` or ``YYYYMMDDHHMMSS`` -> (``YYYY-MM-DD``, ``HH:MM``)."""
    if len(value) < 8 or not value.isdigit():
        return None, None
    try:
        day = datetime.strptime(value[:8], "%Y%m%d")
    except ValueError:
        return None, None
    time = _parse_time(value[8:12]) if len(value) >= 14 else None
    return day.strftime("%Y-%m-%d"), time


def _parse_time(value: str) -> Optional[str]:
    """``HHMM`` or ``HHMMSS`` -> ``HH:MM``."""
    if len(value) not in (4, 6) or not value.isdigit():
        return None
    hour, minute = int(value[:2]), int(value[2:4])
    if hour > 23 or minute > 59:
        return None
    return f"{value[:2]}:{value[2:4]}"


def parse(payload: str) -> ReceiptDraft:
    draft = ReceiptDraft()
    document_number: Optional[str] = None
    fallback_number: Optional[str] = None
    total: Optional[float] = None
    fallback_total: Optional[float] = None

    for token in payload.split("*"):
        key, sep, value = token.partition(":")
        if not sep:
            continue
        key = key.strip().upper()
        value = value.strip()

        if key == "A":
            if value:
                draft.nif = value
        elif key == "B":
            if value and value != GENERIC_CUSTOMER_NIF:
                draft.customer_nif = value
        elif key == "F":
            date, time = _parse_date(value)
            if date:
                draft.date = date
            if time:
                draft.time = time
        elif key == "G":
            if value:
                document_number = value
        elif key == "H":
            time = _parse_time(value)
            if time:
                draft.time = time
            elif value:
                fallback_number = value
        elif key in ("N", "I"):
            amount = _parse_amount(value)
            if amount is not None:
                total = amount
        elif key == "O":
            amount = _parse_amount(value)
            if amount is not None:
                fallback_total = amount

    draft.receipt_number = document_number or fallback_number
    draft.total = total if total is not None else fallback_total
    logger.debug("Parsed ATCUD payload: %s", draft.to_wire())
    return draft
