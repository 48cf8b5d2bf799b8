"""
Tests for id generation.
"""
from datetime import datetime, timedelta, UTC

import pytest

from taskpipe.common.errors import MalformedInput
from taskpipe.common.ulid_utils import (
    EPOCH, FNV_128_OFFSET, ID_LEN, ZERO_TIME,
    canonical_bytes, combine, decode_time, derive_id, encode_time,
    fnv1a_128, has_placeholder_time, id_from_seed, is_valid_id, to_millis,
)


class TestIdFormat:
    """Test the shape of generated ids."""

    def test_derived_id_is_lowercase_and_valid(self):
        ulid = derive_id({"body": "Buy milk"}, datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC))
        assert len(ulid) == ID_LEN
        assert ulid == ulid.lower()
        assert is_valid_id(ulid)

    def test_time_component_round_trips(self):
        ts = datetime(2024, 1, 2, 3, 4, 5, 678000, tzinfo=UTC)
        assert decode_time(derive_id({"body": "x"}, ts)) == ts

    def test_zero_instant_gives_placeholder(self):
        ulid = derive_id({"body": "x"}, EPOCH)
        assert encode_time(0) == ZERO_TIME
        assert has_placeholder_time(ulid)

    def test_time_is_clamped(self):
        assert to_millis(datetime(1960, 1, 1, tzinfo=UTC)) == 0
        assert to_millis(datetime(1970, 1, 1, 0, 0, 1)) == 1000

    def test_placeholder_requires_well_formed_id(self):
        assert not has_placeholder_time(ZERO_TIME)
        assert not has_placeholder_time(ZERO_TIME + "legacy-note")

    def test_invalid_ids_rejected(self):
        assert not is_valid_id("abc")
        assert not is_valid_id("8" * ID_LEN)
        assert not is_valid_id("0" * (ID_LEN - 1) + "u")
        assert not is_valid_id(None)


class TestDeterminism:
    """Test that ids depend only on content and time."""

    def test_same_content_same_id(self):
        ts = datetime(2024, 1, 1, tzinfo=UTC)
        content = {"body": "Buy milk", "tags": ["home"]}
        assert derive_id(content, ts) == derive_id(dict(content), ts)

    def test_ulid_key_is_ignored(self):
        ts = datetime(2024, 1, 1, tzinfo=UTC)
        assert derive_id({"body": "a", "ulid": "x"}, ts) == derive_id({"body": "a"}, ts)

    def test_key_order_is_ignored(self):
        assert canonical_bytes({"b": 1, "a": 2}) == canonical_bytes({"a": 2, "b": 1})

    def test_different_content_different_id(self):
        ts = datetime(2024, 1, 1, tzinfo=UTC)
        assert derive_id({"body": "a"}, ts) != derive_id({"body": "b"}, ts)

    def test_ids_sort_by_time(self):
        start = datetime(2024, 1, 1, tzinfo=UTC)
        ids = [derive_id({"body": f"task {i}"}, start + timedelta(milliseconds=i)) for i in range(50)]
        assert ids == sorted(ids)

    def test_fnv_empty_input_is_offset_basis(self):
        assert fnv1a_128(b"") == FNV_128_OFFSET

    def test_mixed_key_types_are_malformed(self):
        with pytest.raises(MalformedInput, match="cannot be serialised"):
            canonical_bytes({"body": "x", "metadata": {1: "a", "b": "c"}})

    def test_bytes_are_malformed(self):
        with pytest.raises(MalformedInput):
            derive_id({"body": "x", "metadata": {"blob": b"hello"}}, EPOCH)

    def test_seed_is_reduced_to_80_bits(self):
        ts = datetime(2024, 1, 1, tzinfo=UTC)
        assert id_from_seed(5, ts) == id_from_seed(5 + (1 << 80), ts)


class TestCombine:
    """Test replacing the time component."""

    def test_combine_keeps_randomness(self):
        placeholder = derive_id({"body": "note"}, EPOCH)
        now = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)
        combined = combine(placeholder, now)
        assert combined[10:] == placeholder[10:]
        assert decode_time(combined) == now
        assert not has_placeholder_time(combined)
