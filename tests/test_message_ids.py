import pytest
from salondesk.services.message_ids import (
    MATCH_CANONICAL, MATCH_EXACT, MATCH_PREFIX, MATCH_SAME_BASE, match_rank, normalize_message_id,
)

@pytest.mark.parametrize("raw, expected", [
    ("abc123.recvd-xyz", "abc123"),
    ("abc123", "abc123"),
    ("abc123.filter0001.16648.5515E0B88.0", "abc123"),
    ("Xa_b-C9.recvd", "Xa_b-C9"),
    (None, None),
    ("", None),
    ("   ", None),
    (".recvd-only", None),
])
def test_normalize(raw, expected):
    assert normalize_message_id(raw) == expected

@pytest.mark.parametrize("raw", ["abc", "abc.def", "abc.def.ghi", "", ".x", "a..b", None])
def test_normalize_is_idempotent(raw):
    once = normalize_message_id(raw)
    assert normalize_message_id(once) == once

def test_match_rank_orders_stronger_matches_first():
    assert match_rank("m1", "m1") == MATCH_EXACT
    assert match_rank("m1", "m1.recvd-a") == MATCH_CANONICAL
    assert match_rank("m1.recvd-b", "m1") == MATCH_SAME_BASE
    assert match_rank("m1xyz", "m1") == MATCH_PREFIX

def test_match_rank_none_for_unrelated_or_empty():
    assert match_rank("m2.recvd", "m1") is None
    assert match_rank(None, "m1") is None
    assert match_rank("m1", None) is None
    assert match_rank("m1", ".recvd") is None
