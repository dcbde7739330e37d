from .reference import Material, StockArea, User
from .ledger import InventoryUnit
from .workflows import (
    Receipt, ReceiptLine,
    Transfer, TransferLine, transfer_line_units,
    Consumption, ConsumptionLine, consumption_line_units,
    ReturnRecord, ReturnLine,
)
from .requests import MaterialRequest, MaterialRequestLine, MaterialAllocation
from .sequences import DocumentSequence

__all__ = [
    'Material', 'StockArea', 'User',
    'InventoryUnit',
    'Receipt', 'ReceiptLine',
    'Transfer', 'TransferLine', 'transfer_line_units',
    'Consumption', 'ConsumptionLine', 'consumption_line_units',
    'ReturnRecord', 'ReturnLine',
    'MaterialRequest', 'MaterialRequestLine', 'MaterialAllocation',
    'DocumentSequence',
]
