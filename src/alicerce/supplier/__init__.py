"""
Supplier - directory of registered suppliers and their groups

The registry itself lives in alicerce.supplier.registry.
"""

from alicerce.supplier.commands import CreateGroup, RegisterSupplier
from alicerce.supplier.models import Group, Supplier, SupplierDocument, SupplierStatus

__all__ = [
    "CreateGroup",
    "Group",
    "RegisterSupplier",
    "Supplier",
    "SupplierDocument",
    "SupplierStatus",
]
