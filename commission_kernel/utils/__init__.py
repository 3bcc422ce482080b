"""Utility modules for the commission kernel."""

from commission_kernel.utils.identifiers import (
    ITEM_ID_SEPARATOR,
    extract_keys_from_id,
    extract_operation_id,
    make_item_id,
)

__all__ = [
    "ITEM_ID_SEPARATOR",
    "extract_keys_from_id",
    "extract_operation_id",
    "make_item_id",
]
