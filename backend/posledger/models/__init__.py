from .tenancy import Tenant, Outlet
from .catalog import Product, ProductVariant
from .sales import Transaction, TransactionItem, TransactionPayment
from .inventory import InventoryLevel, InventoryMovement, StockDeductionFailure
from .accounting import ChartOfAccount, JournalEntry, JournalEntryLine, JournalOutbox
from .billing import TenantBilling

__all__ = [
    'Tenant', 'Outlet',
    'Product', 'ProductVariant',
    'Transaction', 'TransactionItem', 'TransactionPayment',
    'InventoryLevel', 'InventoryMovement', 'StockDeductionFailure',
    'ChartOfAccount', 'JournalEntry', 'JournalEntryLine', 'JournalOutbox',
    'TenantBilling',
]
