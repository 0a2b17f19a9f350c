"""
Test Helper Functions - Builders and Assertions

Provides reusable builders for demands, suppliers and proposals, and
assertions over the audit trail, so scenario tests read like the workflow
they exercise.

Fun fact: The Builder pattern was formalized by the Gang of Four in 1994,
but test data builders were popularized by the growing programmer test
movement in the 2000s - we use them to keep tests readable and maintainable!
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

from alicerce.audit.recorder import AuditRecorder
from alicerce.demand import commands
from alicerce.demand.engine import LifecycleEngine
from alicerce.demand.models import (
    Demand,
    DemandStatus,
    GlobalAward,
    Item,
    ItemAward,
    PerItemAward,
    Proposal,
    ProposalItem,
)
from alicerce.kernel.identity import CurrentUser, Role
from alicerce.supplier.commands import CreateGroup, RegisterSupplier
from alicerce.supplier.models import Group, Supplier, SupplierStatus
from alicerce.supplier.registry import SupplierRegistry

ADMIN = CurrentUser(user_id="u-setup", name="Setup Admin", role=Role.ADMIN)


# =============================================================================
# Pure model builders
# =============================================================================


def make_item(item_id: str, quantity: str = "1", group_id: str | None = "g-1") -> Item:
    return Item(
        item_id=item_id,
        demand_id="d-1",
        description=f"Item {item_id}",
        quantity=Decimal(quantity),
        group_id=group_id,
    )


def make_supplier(
    supplier_id: str,
    groups: list[str],
    status: SupplierStatus = SupplierStatus.ACTIVE,
    name: str | None = None,
    email: str | None = "",
) -> Supplier:
    """
    Builder for directory entries

    Args:
        supplier_id: Unique supplier identifier
        groups: Group ids or names served
        status: Directory status (Active by default)
        name: Defaults to "Supplier {supplier_id}"
        email: Defaults to "{supplier_id}@example.com"; None for no address
    """
    return Supplier(
        supplier_id=supplier_id,
        name=name or f"Supplier {supplier_id}",
        email=f"{supplier_id}@example.com" if email == "" else email,
        groups=groups,
        status=status,
        registered_at=datetime(2025, 1, 1),
    )


def make_proposal(
    supplier_id: str,
    prices: dict[str, str],
    name: str | None = None,
    total: str = "0",
    delivery_time: str = "",
    observations: str = "",
    submitted_at: datetime | None = None,
) -> Proposal:
    return Proposal(
        proposal_id=f"d-1:{supplier_id}",
        demand_id="d-1",
        supplier_id=supplier_id,
        supplier_name=name or f"Supplier {supplier_id}",
        items=[ProposalItem(item_id=i, unit_price=Decimal(p)) for i, p in prices.items()],
        total_value=Decimal(total),
        delivery_time=delivery_time,
        observations=observations,
        submitted_at=submitted_at or datetime(2025, 1, 20),
    )


def global_decision(supplier_name: str, total: str, justification: str = "") -> GlobalAward:
    return GlobalAward(
        supplier_name=supplier_name, total_value=Decimal(total), justification=justification
    )


def item_decision(*awards: tuple[str, str, str]) -> PerItemAward:
    """Per-item decision from (item_id, supplier_name, total_value) tuples"""
    return PerItemAward(
        awards=[
            ItemAward(item_id=item_id, supplier_name=name, total_value=Decimal(total))
            for item_id, name, total in awards
        ]
    )


# =============================================================================
# Workflow builders (go through the engine and registry)
# =============================================================================


def create_group(registry: SupplierRegistry, name: str) -> Group:
    return registry.create_group(CreateGroup(name=name), ADMIN)


def add_active_supplier(
    registry: SupplierRegistry,
    name: str,
    groups: list[str],
    email: str | None = None,
) -> Supplier:
    """Register and approve a supplier; e-mail defaults to a slug of the name"""
    address = email or f"{name.lower().replace(' ', '.')}@example.com"
    supplier = registry.register(
        RegisterSupplier(name=name, email=address, groups=groups), ADMIN
    )
    return registry.approve(supplier.supplier_id, ADMIN)


def supplier_user(supplier: Supplier) -> CurrentUser:
    return CurrentUser(
        user_id=f"u-{supplier.supplier_id}",
        name=supplier.name,
        role=Role.SUPPLIER,
        supplier_id=supplier.supplier_id,
    )


def create_demand(
    engine: LifecycleEngine,
    user: CurrentUser,
    items: list[dict[str, Any]],
    title: str = "Material de expediente",
    contact_email: str | None = "educacao@prefeitura.example.gov.br",
    deadline: datetime | None = None,
) -> Demand:
    command = commands.CreateDemand(
        title=title,
        department="Secretaria de Educação",
        contact_email=contact_email,
        items=[commands.ItemSpec(**item) for item in items],
        proposal_deadline=deadline,
    )
    return engine.create_demand(command, user).demand


def open_demand(
    engine: LifecycleEngine,
    creator: CurrentUser,
    publisher: CurrentUser,
    items: list[dict[str, Any]],
    contact_email: str | None = "educacao@prefeitura.example.gov.br",
) -> Demand:
    """Create a demand and publish it with a deadline ten days ahead"""
    demand = create_demand(engine, creator, items, contact_email=contact_email)
    deadline = engine.time_provider.now() + timedelta(days=10)
    result = engine.publish_demand(
        commands.PublishDemand(demand_id=demand.demand_id, proposal_deadline=deadline),
        publisher,
    )
    assert result.demand.status == DemandStatus.OPEN_FOR_PROPOSALS
    return result.demand


def submit(
    engine: LifecycleEngine,
    demand: Demand,
    supplier: Supplier,
    unit_prices: list[str],
    delivery_time: str = "10 dias",
    total: str | None = None,
) -> Demand:
    """Submit unit prices in the demand's item order"""
    command = commands.SubmitProposal(
        demand_id=demand.demand_id,
        supplier_id=supplier.supplier_id,
        items=[
            ProposalItem(item_id=item.item_id, unit_price=Decimal(price))
            for item, price in zip(demand.items, unit_prices)
        ],
        total_value=Decimal(total) if total is not None else None,
        delivery_time=delivery_time,
    )
    return engine.submit_proposal(command, supplier_user(supplier)).demand


def to_review(engine: LifecycleEngine, demand: Demand, user: CurrentUser) -> Demand:
    return engine.move_to_review(commands.MoveToReview(demand_id=demand.demand_id), user).demand


# =============================================================================
# Assertions
# =============================================================================


def assert_audit_actions(recorder: AuditRecorder, resource_id: str, expected: list[str]) -> None:
    """
    Assert the resource's audit trail has exactly these actions, in order

    Example:
        >>> assert_audit_actions(recorder, demand_id, ["CREATE_DEMAND", "PUBLISH_DEMAND"])
    """
    actions = [e.action.value for e in recorder.entries(resource_id=resource_id)]
    assert actions == expected, f"Expected audit trail {expected}, got {actions}"


def assert_status(demand: Demand, expected: DemandStatus) -> None:
    assert demand.status == expected, (
        f"Expected demand {demand.demand_id} in {expected.value}, got {demand.status.value}"
    )
