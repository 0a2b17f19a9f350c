"""
Supplier Directory Commands
"""

from pydantic import BaseModel, Field

from alicerce.supplier.models import SupplierDocument


class RegisterSupplier(BaseModel):
    """
    Pre-register a supplier

    The supplier starts Pending and receives no opportunities until an
    administrator approves it.
    """

    name: str = Field(..., min_length=1)
    cnpj: str | None = None
    email: str | None = None
    phone: str | None = None
    groups: list[str] = Field(default_factory=list)
    documents: list[SupplierDocument] = Field(default_factory=list)


class CreateGroup(BaseModel):
    name: str = Field(..., min_length=1)
