"""
Demand Domain Models

A demand is a purchase need raised by a municipal department. It collects
items, supplier proposals and supplier questions, and ends with a winner
record once homologated.

Status and enum values are persisted with the labels the municipality
already uses, so existing dashboards and reports keep working.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, Field, field_validator

DECLINED_SENTINEL = "DECLINED_BY_SUPPLIER"


class DemandStatus(str, Enum):
    """
    Demand lifecycle states

    DRAFT → OPEN_FOR_PROPOSALS → UNDER_REVIEW → (WAREHOUSE_REVIEW) → WINNER_DEFINED → COMPLETED
                                                                                    ↘ CLOSED
    REJECTED / CANCELLED reachable from every non-terminal state.
    """

    DRAFT = "Rascunho"
    OPEN_FOR_PROPOSALS = "Em Cotação"
    UNDER_REVIEW = "Em Análise"
    WAREHOUSE_REVIEW = "Aguardando Análise Almoxarifado"
    WINNER_DEFINED = "Vencedor Definido"
    COMPLETED = "Concluída"
    REJECTED = "Reprovada"
    CANCELLED = "Cancelada"
    CLOSED = "Fechada"


TERMINAL_STATUSES = frozenset(
    {
        DemandStatus.COMPLETED,
        DemandStatus.CLOSED,
        DemandStatus.REJECTED,
        DemandStatus.CANCELLED,
    }
)

REVIEW_STATUSES = frozenset({DemandStatus.UNDER_REVIEW, DemandStatus.WAREHOUSE_REVIEW})


class DemandType(str, Enum):
    MATERIALS = "Materiais"
    SERVICES = "Serviços"


class Priority(str, Enum):
    LOW = "Baixa"
    MEDIUM = "Média"
    URGENT = "Urgente"


class WinnerMode(str, Enum):
    GLOBAL = "global"
    ITEM = "item"


# ============================================================================
# Items, proposals, questions
# ============================================================================


class Item(BaseModel):
    """One line of a demand"""

    item_id: str
    demand_id: str
    description: str = Field(..., min_length=1)
    quantity: Decimal = Field(..., gt=0)
    unit: str = Field(default="un", min_length=1)
    target_price: Decimal | None = Field(
        default=None, ge=0, description="Reference unit price from market research"
    )
    group_id: str | None = Field(
        default=None, description="Group (category) used for supplier matching"
    )

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Item description cannot be blank")
        return v.strip()


class ProposalItem(BaseModel):
    """Supplier's price for one demand item"""

    item_id: str
    unit_price: Decimal = Field(..., ge=0)
    brand: str | None = None
    observations: str | None = None


class Proposal(BaseModel):
    """
    A supplier's offer against a demand

    Keyed by (demand_id, supplier_id): a resubmission replaces the earlier
    proposal. A proposal whose observations carry the DECLINED marker
    records that the supplier opted out.
    """

    proposal_id: str
    demand_id: str
    supplier_id: str
    supplier_name: str
    items: list[ProposalItem] = Field(default_factory=list)
    total_value: Decimal = Field(default=Decimal("0"), ge=0)
    delivery_time: str = ""
    observations: str = ""
    submitted_at: datetime

    @property
    def is_declined(self) -> bool:
        return "DECLINED" in (self.observations or "")


class Question(BaseModel):
    """A supplier question about a demand, with its optional answer"""

    question_id: str
    demand_id: str
    supplier_id: str
    supplier_name: str
    text: str = Field(..., min_length=1)
    asked_at: datetime
    answer: str | None = None
    answered_by: str | None = None
    answered_at: datetime | None = None

    @property
    def is_answered(self) -> bool:
        return self.answer is not None


# ============================================================================
# Homologation decision (tagged union) and winner record
# ============================================================================


class ItemAward(BaseModel):
    """One item awarded to one supplier"""

    item_id: str
    supplier_name: str = Field(..., min_length=1)
    unit_price: Decimal = Field(default=Decimal("0"), ge=0)
    total_value: Decimal = Field(..., ge=0)

    @field_validator("supplier_name")
    @classmethod
    def validate_supplier_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Item winner name cannot be blank")
        return v.strip()


class GlobalAward(BaseModel):
    """Whole demand awarded to a single supplier"""

    mode: Literal["global"] = "global"
    supplier_name: str = Field(..., min_length=1)
    total_value: Decimal = Field(..., ge=0)
    justification: str = ""

    @field_validator("supplier_name")
    @classmethod
    def validate_supplier_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Winning supplier name cannot be blank")
        return v.strip()


class PerItemAward(BaseModel):
    """Each item awarded independently"""

    mode: Literal["item"] = "item"
    awards: list[ItemAward] = Field(..., min_length=1)
    justification: str = ""


WinnerDecision = Annotated[GlobalAward | PerItemAward, Field(discriminator="mode")]


class WinnerReportRow(BaseModel):
    """Per-supplier summary of what was awarded"""

    supplier_name: str
    item_ids: list[str]
    total_value: Decimal


class WinnerRecord(BaseModel):
    """Canonical winner attached to a homologated demand"""

    mode: WinnerMode
    supplier_name: str | None = None
    total_value: Decimal
    justification: str = ""
    awards: list[ItemAward] = Field(default_factory=list)
    decided_at: datetime
    decided_by: str


# ============================================================================
# Demand
# ============================================================================


class Demand(BaseModel):
    """
    Procurement demand aggregate

    Items, proposals and questions are stored in their own collections and
    assembled here on load. `version` is the demand record's store version
    and guards every transition.
    """

    demand_id: str
    protocol: str
    title: str = Field(..., min_length=1)
    department: str = Field(..., min_length=1)
    contact_email: str | None = None
    description: str = ""
    demand_type: DemandType = DemandType.MATERIALS
    priority: Priority = Priority.MEDIUM
    status: DemandStatus = DemandStatus.DRAFT
    items: list[Item] = Field(default_factory=list)
    proposals: list[Proposal] = Field(default_factory=list)
    questions: list[Question] = Field(default_factory=list)
    winner: WinnerRecord | None = None
    proposal_deadline: datetime | None = None
    decision_date: datetime | None = None
    rejection_reason: str | None = None
    approval_observations: str | None = None
    created_by: str
    created_at: datetime
    published_at: datetime | None = None
    version: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def item(self, item_id: str) -> Item | None:
        return next((i for i in self.items if i.item_id == item_id), None)

    def question(self, question_id: str) -> Question | None:
        return next((q for q in self.questions if q.question_id == question_id), None)
