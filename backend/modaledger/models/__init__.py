from .catalog import Product, Customer
from .sales import Sale, SaleItem, Installment
from .system import DiagnosticProbe

__all__ = [
    'Product', 'Customer',
    'Sale', 'SaleItem', 'Installment',
    'DiagnosticProbe',
]
