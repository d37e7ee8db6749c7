from .catalog import Category, Item
from .journal import JournalEntry
from .purchases import Purchase, PurchaseLine
from .counterparties import Vendor, VendorPayment, Customer, CustomerPayment
from .pos import BillType, POSTransaction, POSTransactionLine, POSReturn, POSReturnLine
from .documents import DocumentSequence
from .offline import OfflineDrainLease, OfflineEvent

__all__ = [
    'Category', 'Item',
    'JournalEntry',
    'Purchase', 'PurchaseLine',
    'Vendor', 'VendorPayment', 'Customer', 'CustomerPayment',
    'BillType', 'POSTransaction', 'POSTransactionLine', 'POSReturn', 'POSReturnLine',
    'DocumentSequence',
    'OfflineEvent', 'OfflineDrainLease',
]
