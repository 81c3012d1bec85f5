"""
Provider message-id handling.

SendGrid acknowledges a send with a bare id (``X-Message-Id: abc123``) but
reports events against a decorated id (``abc123.recvd-4f...``). Only the
part before the first dot is stable, so that prefix is the join key between
our log rows and provider events.
"""
from typing import Optional

DELIMITER = "."

def normalize_message_id(value: Optional[str]) -> Optional[str]:
    """Canonical form of a provider message id: the substring before the first dot."""
    if value is None:
        return None
    value = str(value)
    if not value.strip():
        return None
    base = value.split(DELIMITER, 1)[0]
    return base or None

MATCH_EXACT = 0
MATCH_CANONICAL = 1
MATCH_SAME_BASE = 2
MATCH_PREFIX = 3

def match_rank(candidate: Optional[str], stored: Optional[str]) -> Optional[int]:
    """
    How strongly a provider-reported id refers to a stored one; lower is
    stronger, None means no match. Ranks: exact full id, exact canonical id,
    canonical == canonical, candidate starts with the stored canonical id.
    """
    if not candidate or not stored:
        return None
    candidate = str(candidate)
    stored_base = normalize_message_id(stored)
    if not stored_base:
        return None
    if candidate == stored:
        return MATCH_EXACT
    if candidate == stored_base:
        return MATCH_CANONICAL
    if normalize_message_id(candidate) == stored_base:
        return MATCH_SAME_BASE
    if candidate.startswith(stored_base):
        return MATCH_PREFIX
    return None
