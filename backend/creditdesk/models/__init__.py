from .catalog import Category, Product
from .technical_services import (
    TechnicalService,
    TechnicalServiceTransaction,
    TechnicalServiceSale,
    TechnicalServiceHistory,
)
from .system import SystemLog

__all__ = [
    'Category', 'Product',
    'TechnicalService', 'TechnicalServiceTransaction',
    'TechnicalServiceSale', 'TechnicalServiceHistory',
    'SystemLog',
]
