"""
Supplier Directory Models

Suppliers register themselves, wait for approval, and from then on receive
opportunities for the groups (categories) they serve.

Fun fact: Brazil's CNPJ number ends in two check digits computed with a
weighted mod-11 sum, the same family of checksums used on ISBNs.
"""

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator


class SupplierStatus(str, Enum):
    """
    Supplier registration states

    PENDING → ACTIVE | REJECTED, ACTIVE → INACTIVE → ACTIVE
    Only ACTIVE suppliers are matched to demands.
    """

    PENDING = "Pendente"
    ACTIVE = "Ativo"
    REJECTED = "Reprovado"
    INACTIVE = "Inativo"


class SupplierDocument(BaseModel):
    """Registration document (certidão) with its validity date"""

    name: str = Field(..., min_length=1)
    validity_date: date | None = Field(
        default=None, description="Expiration date (None = no expiry)"
    )

    def is_expired(self, check_date: date) -> bool:
        if self.validity_date is None:
            return False
        return check_date > self.validity_date


class Supplier(BaseModel):
    """Registered supplier"""

    supplier_id: str
    name: str = Field(..., min_length=1)
    cnpj: str | None = None
    email: str | None = None
    phone: str | None = None
    groups: list[str] = Field(
        default_factory=list, description="Group ids or group names served"
    )
    status: SupplierStatus = SupplierStatus.PENDING
    documents: list[SupplierDocument] = Field(default_factory=list)
    rejection_reason: str | None = None
    registered_at: datetime

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Supplier name cannot be blank")
        return v.strip()

    @property
    def is_active(self) -> bool:
        return self.status == SupplierStatus.ACTIVE

    def expired_documents(self, check_date: date) -> list[SupplierDocument]:
        """Documents whose validity date has passed"""
        return [doc for doc in self.documents if doc.is_expired(check_date)]


class Group(BaseModel):
    """Category used to match demand items to suppliers"""

    group_id: str
    name: str = Field(..., min_length=1)
