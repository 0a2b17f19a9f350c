"""
Audit domain models

One AuditEntry per successful mutating operation. Entries are frozen once
built and the audit table refuses UPDATE and DELETE.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class AuditAction(str, Enum):
    """Action names recorded in the audit trail"""

    # Demand lifecycle
    CREATE_DEMAND = "CREATE_DEMAND"
    PUBLISH_DEMAND = "PUBLISH_DEMAND"
    UPDATE_STATUS = "UPDATE_STATUS"
    WAREHOUSE_APPROVAL = "WAREHOUSE_APPROVAL"
    DEFINE_WINNER = "DEFINE_WINNER"
    REJECT_DEMAND = "REJECT_DEMAND"
    CANCEL_DEMAND = "CANCEL_DEMAND"
    COMPLETE_DEMAND = "COMPLETE_DEMAND"
    CLOSE_DEMAND = "CLOSE_DEMAND"
    UPDATE_ITEMS = "UPDATE_ITEMS"
    DELETE_DEMAND = "DELETE_DEMAND"

    # Supplier participation
    SUBMIT_PROPOSAL = "SUBMIT_PROPOSAL"
    DECLINE_OPPORTUNITY = "DECLINE_OPPORTUNITY"
    ASK_QUESTION = "ASK_QUESTION"
    ANSWER_QUESTION = "ANSWER_QUESTION"

    # Directory
    REGISTER_SUPPLIER = "REGISTER_SUPPLIER"
    UPDATE_SUPPLIER_STATUS = "UPDATE_SUPPLIER_STATUS"
    UPDATE_SUPPLIER_GROUPS = "UPDATE_SUPPLIER_GROUPS"
    CREATE_GROUP = "CREATE_GROUP"


class AuditEntry(BaseModel):
    """Immutable audit record"""

    model_config = ConfigDict(frozen=True)

    entry_id: str
    user_id: str
    user_name: str
    user_role: str
    action: AuditAction
    resource_type: str
    resource_id: str
    details: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime
