"""
Identity - the acting user as seen by the engine

Sessions and authentication live outside Alicerce. The engine only receives
a CurrentUser value and uses it for authorization and audit attribution.
"""

from enum import Enum

from pydantic import BaseModel, Field


class Role(str, Enum):
    """User roles, persisted with the labels used by the municipality"""

    SECRETARIAT = "Secretaria Solicitante"
    WAREHOUSE = "Almoxarifado"
    PROCUREMENT = "Departamento de Contratações"
    SUPER_ADMIN = "super_admin"
    ADMIN = "Administrador"
    SUPPLIER = "Fornecedor"
    CITIZEN = "Cidadão (Transparência)"


ADMIN_ROLES = frozenset({Role.ADMIN, Role.SUPER_ADMIN})


class CurrentUser(BaseModel):
    """Acting user context supplied by the identity provider"""

    user_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    role: Role
    supplier_id: str | None = Field(
        default=None, description="Supplier record linked to a supplier user"
    )

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES
