"""
Centralized Operation Registry

Single source of truth for ledger transaction types and the direction of stock
movement each one may carry.
"""

from typing import Any, Dict

from stockroom.models import TransactionType

ADDITIVE = 'additive'
DEDUCTIVE = 'deductive'
BIDIRECTIONAL = 'bidirectional'

OPERATION_REGISTRY = {
    TransactionType.PURCHASE: {
        'direction': ADDITIVE,
        'message': 'Received',
    },
    TransactionType.RETURN: {
        'direction': ADDITIVE,
        'message': 'Returned',
    },
    TransactionType.ADJUSTMENT: {
        'direction': ADDITIVE,
        'message': 'Adjusted',
    },
    TransactionType.SALE: {
        'direction': DEDUCTIVE,
        'message': 'Sold',
    },
    TransactionType.TRANSFER: {
        'direction': BIDIRECTIONAL,
        'message': 'Transferred',
    },
    TransactionType.OTHER: {
        'direction': BIDIRECTIONAL,
        'message': 'Recorded',
    },
}


def normalize_transaction_type(transaction_type) -> str:
    return (transaction_type or '').strip().upper()


def get_operation_config(transaction_type: str) -> Dict[str, Any]:
    """Get configuration for a transaction type"""
    return OPERATION_REGISTRY.get(normalize_transaction_type(transaction_type), {})


def get_direction(transaction_type: str) -> str:
    return get_operation_config(transaction_type).get('direction', 'unknown')


def validate_operation_type(transaction_type: str) -> bool:
    return normalize_transaction_type(transaction_type) in OPERATION_REGISTRY


def get_all_operation_types() -> list:
    return list(OPERATION_REGISTRY.keys())


def allows_delta(transaction_type: str, signed_quantity: int, *, compensating: bool = False) -> bool:
    """Whether a delta of this sign is legal for the transaction type."""
    direction = get_direction(transaction_type)
    if direction == BIDIRECTIONAL:
        return True
    if direction == DEDUCTIVE:
        return signed_quantity < 0
    if direction == ADDITIVE:
        return signed_quantity > 0 or compensating
    return False
