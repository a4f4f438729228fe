"""
Stock Ledger - Canonical Entry Point

Every change to on-hand stock goes through apply_delta, which moves the
quantity and appends the matching InventoryTransaction atomically.
"""

from ._core import apply_delta
from ._history import list_transactions
from ._operation_registry import OPERATION_REGISTRY, get_all_operation_types
from ._validation import validate_ledger_sync, validate_product_ledger_sync

__all__ = [
    'apply_delta',
    'list_transactions',
    'validate_ledger_sync',
    'validate_product_ledger_sync',
    'get_supported_transaction_types',
]


def get_supported_transaction_types():
    """Return list of all supported transaction types"""
    return get_all_operation_types()
