from .inventory import Product, StockMovement
from .sales import Sale, SaleItem
from .customers import Customer
from .ledger import DebtCredit
from .expenses import Expense

__all__ = [
    'Product', 'StockMovement',
    'Sale', 'SaleItem',
    'Customer',
    'DebtCredit',
    'Expense',
]
