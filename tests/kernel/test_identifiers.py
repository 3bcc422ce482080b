"""
Item identifier tests.

Item ids are ``operation_id + "_" + position_id`` and are split on the LAST
separator, so operation ids containing the separator survive a round trip.
"""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from commission_kernel.exceptions import InvalidItemIdError
from commission_kernel.utils.identifiers import (
    ITEM_ID_SEPARATOR,
    extract_keys_from_id,
    extract_operation_id,
    make_item_id,
)

operation_ids = st.text(min_size=1, max_size=40)
position_ids = st.from_regex(r"[A-Za-z0-9\-]{1,20}", fullmatch=True)


class TestMakeItemId:
    def test_joins_with_separator(self):
        assert make_item_id("op-1", "pos-7") == "op-1_pos-7"
        assert ITEM_ID_SEPARATOR == "_"


class TestExtractKeys:
    def test_splits_on_last_separator(self):
        assert extract_keys_from_id("swap_2024_01_01_pos-9") == (
            "swap_2024_01_01", "pos-9",
        )

    def test_no_separator_raises(self):
        with pytest.raises(InvalidItemIdError) as exc_info:
            extract_keys_from_id("op-without-separator")
        assert exc_info.value.item_id == "op-without-separator"
        assert exc_info.value.code == "INVALID_ITEM_ID"

    @given(operation_id=operation_ids, position_id=position_ids)
    def test_recovers_both_parts(self, operation_id, position_id):
        item_id = make_item_id(operation_id, position_id)
        assert extract_keys_from_id(item_id) == (operation_id, position_id)


class TestExtractOperationId:
    def test_item_id_yields_parent(self):
        assert extract_operation_id("op_1_pos-1") == "op_1"

    def test_plain_operation_id_is_unchanged(self):
        assert extract_operation_id("op-1") == "op-1"

    @given(operation_id=operation_ids, position_id=position_ids)
    def test_parent_of_any_item(self, operation_id, position_id):
        assert extract_operation_id(make_item_id(operation_id, position_id)) == operation_id
