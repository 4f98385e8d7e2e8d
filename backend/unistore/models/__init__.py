from .tenancy import Organization, new_id
from .entities import Entity, DynamicField
from .relationships import Relationship
from .transactions import Transaction, TransactionLine

__all__ = [
    'Organization', 'new_id',
    'Entity', 'DynamicField',
    'Relationship',
    'Transaction', 'TransactionLine',
]
