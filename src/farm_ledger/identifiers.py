"""Identifier generation for invoices and master records.

Invoice numbers follow ``{prefix}-{YYYYMMDD}-{NNN}`` with a sequence that
restarts every day; other records use ``{letter}{NNN}``. In both cases the
next sequence is one more than the highest sequence already present in the
supplied collection, so gaps left by deletions are never reused unless they
sit at the top.
"""

from __future__ import annotations

import re
from datetime import date
from typing import Iterable

SEQUENCE_WIDTH = 3


def next_invoice_number(prefix: str, existing_numbers: Iterable[str], *, on: date) -> str:
    """Return the next invoice number for ``prefix`` on the given day.

    Args:
        prefix (str): Invoice family, ``"S"`` for sales or ``"P"`` for
            purchases.
        existing_numbers (Iterable[str]): Invoice numbers already issued.
            Entries for other days or other prefixes are ignored.
        on (date): Day the new invoice belongs to.

    Returns:
        str: Identifier such as ``S-20250615-001``.
    """

    day = on.strftime("%Y%m%d")
    pattern = re.compile(rf"^{re.escape(prefix)}-{day}-(\d+)$")
    highest = 0
    for number in existing_numbers:
        match = pattern.match(number or "")
        if match:
            highest = max(highest, int(match.group(1)))
    return f"{prefix}-{day}-{highest + 1:0{SEQUENCE_WIDTH}d}"


def next_sequential_id(prefix: str, existing_ids: Iterable[str]) -> str:
    """Return the next ``{prefix}{NNN}`` identifier, e.g. ``F001`` or ``T014``.

    Identifiers that do not match the pattern (legacy ids, other prefixes)
    are ignored when computing the maximum.
    """

    pattern = re.compile(rf"^{re.escape(prefix)}(\d+)$")
    highest = 0
    for identifier in existing_ids:
        match = pattern.match(identifier or "")
        if match:
            highest = max(highest, int(match.group(1)))
    return f"{prefix}{highest + 1:0{SEQUENCE_WIDTH}d}"
