from .catalog import Product, StockMovement
from .people import Seller, Customer, CustomerProduct
from .billing import Bill, BillItem, Income, DocumentSequence
from .parcels import Parcel, ParcelItem
from .ledger import Sale, Return
from .purchasing import PurchaseBatch, PurchaseBatchItem

__all__ = [
    'Product', 'StockMovement',
    'Seller', 'Customer', 'CustomerProduct',
    'Bill', 'BillItem', 'Income', 'DocumentSequence',
    'Parcel', 'ParcelItem',
    'Sale', 'Return',
    'PurchaseBatch', 'PurchaseBatchItem',
]
