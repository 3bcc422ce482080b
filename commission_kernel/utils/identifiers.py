"""
Item identifier utilities.

Every calculated item is identified by its parent operation id and its
position id joined with ``ITEM_ID_SEPARATOR``.  The same string keys the
result row, the per-item sub-operation in the ledger and the downstream
charge command, so duplicate deliveries of any of them collapse onto one
record.

Parsing always splits on the LAST occurrence of the separator, so an
operation id that itself contains the separator is recovered intact.
"""

from commission_kernel.exceptions import InvalidItemIdError

ITEM_ID_SEPARATOR = "_"


def make_item_id(operation_id: str, position_id: str) -> str:
    """
    Build the identifier of one item of a batch run.

    Example:
        >>> make_item_id("op-1", "pos-7")
        'op-1_pos-7'
    """
    return f"{operation_id}{ITEM_ID_SEPARATOR}{position_id}"


def extract_keys_from_id(item_id: str) -> tuple[str, str]:
    """
    Split an item id into (operation_id, position_id).

    Raises:
        InvalidItemIdError: If the id contains no separator.
    """
    index = item_id.rfind(ITEM_ID_SEPARATOR)
    if index == -1:
        raise InvalidItemIdError(item_id)
    return item_id[:index], item_id[index + 1:]


def extract_operation_id(identifier: str) -> str:
    """
    Return the parent operation id of an item id.

    An identifier without a separator is already an operation id and is
    returned unchanged.
    """
    index = identifier.rfind(ITEM_ID_SEPARATOR)
    return identifier if index == -1 else identifier[:index]
