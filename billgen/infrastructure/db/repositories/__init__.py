from .bill_repository import BillRepository

__all__ = [
    "BillRepository",
]
