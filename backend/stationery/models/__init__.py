from .catalog import Product, SetItem
from .locations import Location, LocationCourse, LocationStock
from .people import Student, StudentReceivedItem, StaffMember
from .transactions import Transaction, TransactionItem, TransactionSetComponent
from .documents import StockTransfer, StockTransferItem, AuditLog, DocumentSequence

__all__ = [
    'Product', 'SetItem',
    'Location', 'LocationCourse', 'LocationStock',
    'Student', 'StudentReceivedItem', 'StaffMember',
    'Transaction', 'TransactionItem', 'TransactionSetComponent',
    'StockTransfer', 'StockTransferItem', 'AuditLog', 'DocumentSequence',
]
