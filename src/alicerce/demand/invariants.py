"""
Demand Invariants

Pure validation functions for the demand lifecycle: the status graph, role
permissions and per-operation preconditions. The engine calls these before
touching the store, so a failure never leaves partial state behind.
"""

from collections.abc import Iterable

from alicerce.audit.models import AuditAction
from alicerce.demand.models import (
    REVIEW_STATUSES,
    TERMINAL_STATUSES,
    Demand,
    DemandStatus,
    ProposalItem,
)
from alicerce.kernel.errors import (
    InvalidTransition,
    NotAuthorized,
    ProposalRejected,
    PublishPreconditionFailed,
    ValidationFailed,
)
from alicerce.kernel.identity import ADMIN_ROLES, CurrentUser, Role

# ============================================================================
# Status graph
# ============================================================================

_ESCAPES = {DemandStatus.REJECTED, DemandStatus.CANCELLED}

TRANSITIONS: dict[DemandStatus, frozenset[DemandStatus]] = {
    DemandStatus.DRAFT: frozenset(
        {DemandStatus.OPEN_FOR_PROPOSALS, DemandStatus.WAREHOUSE_REVIEW} | _ESCAPES
    ),
    DemandStatus.OPEN_FOR_PROPOSALS: frozenset(
        {DemandStatus.UNDER_REVIEW, DemandStatus.WAREHOUSE_REVIEW} | _ESCAPES
    ),
    DemandStatus.WAREHOUSE_REVIEW: frozenset(
        {
            DemandStatus.OPEN_FOR_PROPOSALS,
            DemandStatus.UNDER_REVIEW,
            DemandStatus.WINNER_DEFINED,
        }
        | _ESCAPES
    ),
    DemandStatus.UNDER_REVIEW: frozenset({DemandStatus.WINNER_DEFINED} | _ESCAPES),
    # WINNER_DEFINED -> WINNER_DEFINED is the redefinition path
    DemandStatus.WINNER_DEFINED: frozenset(
        {
            DemandStatus.WINNER_DEFINED,
            DemandStatus.COMPLETED,
            DemandStatus.CLOSED,
        }
        | _ESCAPES
    ),
    DemandStatus.COMPLETED: frozenset(),
    DemandStatus.CLOSED: frozenset(),
    DemandStatus.REJECTED: frozenset(),
    DemandStatus.CANCELLED: frozenset(),
}


def can_transition(current: DemandStatus, target: DemandStatus) -> bool:
    return target in TRANSITIONS[current]


def validate_transition(demand: Demand, target: DemandStatus) -> None:
    """
    Validate that the status graph allows demand.status -> target

    Raises:
        InvalidTransition: If the move is not in TRANSITIONS
    """
    if not can_transition(demand.status, target):
        raise InvalidTransition(demand.demand_id, demand.status.value, target.value)


def validate_not_terminal(demand: Demand, action: str) -> None:
    if demand.status in TERMINAL_STATUSES:
        raise ValidationFailed(
            f"Demand {demand.demand_id} is {demand.status.value}; {action} is no longer possible"
        )


# ============================================================================
# Permissions
# ============================================================================

_STAFF = frozenset({Role.PROCUREMENT}) | ADMIN_ROLES

PERMISSIONS: dict[AuditAction, frozenset[Role]] = {
    AuditAction.CREATE_DEMAND: frozenset({Role.SECRETARIAT, Role.WAREHOUSE}) | _STAFF,
    AuditAction.PUBLISH_DEMAND: _STAFF,
    AuditAction.UPDATE_STATUS: frozenset({Role.SECRETARIAT, Role.WAREHOUSE}) | _STAFF,
    AuditAction.WAREHOUSE_APPROVAL: frozenset({Role.WAREHOUSE}) | _STAFF,
    AuditAction.DEFINE_WINNER: _STAFF,
    AuditAction.REJECT_DEMAND: frozenset({Role.WAREHOUSE}) | _STAFF,
    AuditAction.CANCEL_DEMAND: frozenset({Role.SECRETARIAT}) | _STAFF,
    AuditAction.COMPLETE_DEMAND: _STAFF,
    AuditAction.CLOSE_DEMAND: _STAFF,
    AuditAction.UPDATE_ITEMS: frozenset({Role.SECRETARIAT, Role.WAREHOUSE}) | _STAFF,
    AuditAction.DELETE_DEMAND: ADMIN_ROLES,
    AuditAction.SUBMIT_PROPOSAL: frozenset({Role.SUPPLIER}),
    AuditAction.DECLINE_OPPORTUNITY: frozenset({Role.SUPPLIER}),
    AuditAction.ASK_QUESTION: frozenset({Role.SUPPLIER}),
    AuditAction.ANSWER_QUESTION: frozenset({Role.WAREHOUSE}) | _STAFF,
    AuditAction.REGISTER_SUPPLIER: frozenset({Role.SUPPLIER}) | _STAFF,
    AuditAction.UPDATE_SUPPLIER_STATUS: _STAFF,
    AuditAction.UPDATE_SUPPLIER_GROUPS: frozenset({Role.SUPPLIER}) | _STAFF,
    AuditAction.CREATE_GROUP: _STAFF,
}


def authorize(user: CurrentUser, action: AuditAction) -> None:
    """
    Check that the user's role may perform the action

    Raises:
        NotAuthorized: If the role is not listed for the action
    """
    if user.role not in PERMISSIONS.get(action, frozenset()):
        raise NotAuthorized(user.user_id, user.role.value, action.value)


def authorize_supplier(user: CurrentUser, supplier_id: str, action: AuditAction) -> None:
    """Supplier users may only act for their own supplier record"""
    authorize(user, action)
    if user.supplier_id != supplier_id:
        raise NotAuthorized(user.user_id, user.role.value, f"{action.value} for supplier {supplier_id}")


# ============================================================================
# Preconditions
# ============================================================================


def validate_publishable(demand: Demand) -> None:
    """
    A demand can only be published with at least one item and a deadline

    Raises:
        PublishPreconditionFailed: Listing every missing requirement
    """
    reasons = []
    if not demand.items:
        reasons.append("demand has no items")
    if demand.proposal_deadline is None:
        reasons.append("proposal deadline is not set")
    if reasons:
        raise PublishPreconditionFailed(demand.demand_id, reasons)


def validate_reason(reason: str | None, action: str) -> str:
    """
    Reject and cancel need a non-blank reason, stored verbatim

    Returns:
        The reason unchanged
    """
    if reason is None or not reason.strip():
        raise ValidationFailed(f"A reason is required to {action}")
    return reason


def validate_accepts_proposals(demand: Demand, allow_during_review: bool) -> bool:
    """
    Check the demand's status admits proposals

    Returns:
        True when the proposal arrives during review (only possible when
        allow_during_review is on)

    Raises:
        ProposalRejected: If the demand is not accepting proposals
    """
    if demand.status == DemandStatus.OPEN_FOR_PROPOSALS:
        return False
    if allow_during_review and demand.status in REVIEW_STATUSES:
        return True
    raise ProposalRejected(
        f"Demand {demand.demand_id} is {demand.status.value} and not accepting proposals"
    )


def validate_proposal_items(demand: Demand, items: Iterable[ProposalItem]) -> None:
    """
    Every priced item must belong to the demand and appear once

    Raises:
        ProposalRejected: On unknown or repeated item ids
    """
    known = {item.item_id for item in demand.items}
    seen: set[str] = set()
    for proposal_item in items:
        if proposal_item.item_id not in known:
            raise ProposalRejected(
                f"Item {proposal_item.item_id} does not belong to demand {demand.demand_id}"
            )
        if proposal_item.item_id in seen:
            raise ProposalRejected(f"Item {proposal_item.item_id} priced more than once")
        seen.add(proposal_item.item_id)


def validate_items_editable(demand: Demand, user: CurrentUser) -> None:
    """
    Items are frozen once the demand leaves draft

    Warehouse review may still correct them; administrators may correct them
    in any non-terminal status.
    """
    validate_not_terminal(demand, "item correction")
    if demand.status in (DemandStatus.DRAFT, DemandStatus.WAREHOUSE_REVIEW):
        return
    if user.is_admin:
        return
    raise ValidationFailed(
        f"Items of demand {demand.demand_id} are frozen in status {demand.status.value}"
    )


def validate_item_correction(demand: Demand, item_ids: Iterable[str | None]) -> None:
    """
    Corrected lines must refer to the demand's own items, once each, and
    an item priced in a live proposal cannot be dropped

    Args:
        item_ids: item_id of each corrected line; None for a new line

    Raises:
        ValidationFailed: On an unknown or repeated item id, or when a
            priced item is left out
    """
    known = {item.item_id for item in demand.items}
    kept: set[str] = set()
    for item_id in item_ids:
        if item_id is None:
            continue
        if item_id not in known:
            raise ValidationFailed(f"Item {item_id} does not belong to demand {demand.demand_id}")
        if item_id in kept:
            raise ValidationFailed(f"Item {item_id} corrected more than once")
        kept.add(item_id)

    for proposal in demand.proposals:
        if proposal.is_declined:
            continue
        priced = {line.item_id for line in proposal.items} - kept
        if priced:
            raise ValidationFailed(
                f"Items {sorted(priced)} of demand {demand.demand_id} are priced by "
                f"{proposal.supplier_name} and cannot be removed"
            )
