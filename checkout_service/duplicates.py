"""
duplicates.py — Duplicate Order Guard

Best-effort detection of resubmitted orders by their clientRequestId. The
check is not transactional: two concurrent submissions carrying the same token
can both pass. Staff review the ledger before fulfilment.
"""

import logging
from enum import Enum

from .clients import SheetsLedger

log = logging.getLogger(__name__)


class DuplicateCheck(str, Enum):
    DUPLICATE = "duplicate"
    NOT_DUPLICATE = "not_duplicate"
    # Ledger unreachable or misconfigured; treated as not a duplicate (fail open).
    UNKNOWN = "unknown"


async def check_duplicate(ledger: SheetsLedger, client_request_id: str) -> DuplicateCheck:
    """
    Looks up `client_request_id` in the ledger.

    Returns NOT_DUPLICATE without a lookup when the ledger is switched off,
    and UNKNOWN instead of raising when the lookup fails, so that checkout
    stays available during a storage outage.
    """
    log_prefix = f"[Order: {client_request_id}]"
    if not ledger.enabled:
        return DuplicateCheck.NOT_DUPLICATE

    try:
        found = await ledger.contains(client_request_id)
    except Exception as e:
        log.warning(f"{log_prefix} Duplicate check unavailable, accepting order: {e}")
        return DuplicateCheck.UNKNOWN

    return DuplicateCheck.DUPLICATE if found else DuplicateCheck.NOT_DUPLICATE


async def is_duplicate(ledger: SheetsLedger, client_request_id: str) -> bool:
    return await check_duplicate(ledger, client_request_id) is DuplicateCheck.DUPLICATE
