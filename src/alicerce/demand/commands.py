"""
Demand Commands

Commands express intentions to change a demand. Shape validation happens
here through pydantic; state-dependent rules live in invariants.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated

from pydantic import AfterValidator, BaseModel, Field, field_validator

from alicerce.demand.models import (
    DemandStatus,
    DemandType,
    Priority,
    ProposalItem,
    WinnerDecision,
)
from alicerce.kernel.time import as_utc


# Deadlines without a timezone are taken as UTC
Deadline = Annotated[datetime, AfterValidator(as_utc)]


class ItemSpec(BaseModel):
    """Item specification for demand creation and correction"""

    description: str = Field(..., min_length=1)
    quantity: Decimal = Field(..., gt=0)
    unit: str = Field(default="un", min_length=1)
    target_price: Decimal | None = Field(default=None, ge=0)
    group_id: str | None = None
    item_id: str | None = Field(
        default=None,
        description="Existing item corrected in place; omitted for a new line",
    )


class CreateDemand(BaseModel):
    """Create a demand in draft"""

    title: str = Field(..., min_length=1)
    department: str = Field(..., min_length=1)
    contact_email: str | None = None
    items: list[ItemSpec] = Field(default_factory=list)
    proposal_deadline: Deadline | None = None
    description: str = ""
    demand_type: DemandType = DemandType.MATERIALS
    priority: Priority = Priority.MEDIUM

    @field_validator("title", "department")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Field cannot be blank")
        return v.strip()


class PublishDemand(BaseModel):
    """Open a demand for proposals, optionally setting its deadline"""

    demand_id: str
    proposal_deadline: Deadline | None = None


class WarehouseApprove(BaseModel):
    """Warehouse sign-off, with optional item corrections"""

    demand_id: str
    observations: str | None = None
    items: list[ItemSpec] | None = None
    proposal_deadline: Deadline | None = None


class MoveToReview(BaseModel):
    """Stop collecting proposals and start the analysis"""

    demand_id: str
    target: DemandStatus = DemandStatus.UNDER_REVIEW
    reason: str | None = None

    @field_validator("target")
    @classmethod
    def validate_target(cls, v: DemandStatus) -> DemandStatus:
        if v not in (DemandStatus.UNDER_REVIEW, DemandStatus.WAREHOUSE_REVIEW):
            raise ValueError("Review target must be UNDER_REVIEW or WAREHOUSE_REVIEW")
        return v


class SubmitProposal(BaseModel):
    """
    Submit (or resubmit) a supplier's proposal

    When total_value is omitted it is computed from unit prices and item
    quantities.
    """

    demand_id: str
    supplier_id: str
    items: list[ProposalItem] = Field(..., min_length=1)
    total_value: Decimal | None = Field(default=None, ge=0)
    delivery_time: str = ""
    observations: str = ""


class DeclineOpportunity(BaseModel):
    demand_id: str
    supplier_id: str
    reason: str | None = None


class AskQuestion(BaseModel):
    demand_id: str
    supplier_id: str
    text: str = Field(..., min_length=1)

    @field_validator("text")
    @classmethod
    def validate_text(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Question cannot be blank")
        return v.strip()


class AnswerQuestion(BaseModel):
    demand_id: str
    question_id: str
    answer: str = Field(..., min_length=1)

    @field_validator("answer")
    @classmethod
    def validate_answer(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Answer cannot be blank")
        return v.strip()


class DefineWinner(BaseModel):
    """Homologate a winner (global or per item)"""

    demand_id: str
    decision: WinnerDecision


class RejectDemand(BaseModel):
    demand_id: str
    reason: str


class CancelDemand(BaseModel):
    demand_id: str
    reason: str


class FinalizeDemand(BaseModel):
    """Complete or close a homologated demand"""

    demand_id: str
    observations: str | None = None


class UpdateItems(BaseModel):
    """
    Correction of the demand's items

    Lines carrying an item_id keep their identity, so prices already
    submitted against them stay valid. Lines without one are added, and
    existing items left out are removed.
    """

    demand_id: str
    items: list[ItemSpec] = Field(..., min_length=1)
    reason: str | None = None
