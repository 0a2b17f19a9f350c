"""
Tests for Supplier Matching - binary group matching

A supplier either serves one of the demand's groups and is Active, or it
does not hear about the demand. No scoring, no weighting.

Fun fact: Set intersection is one of the operations George Boole wrote down
in 1854 - the whole matching rule is a single one of them.
"""

from datetime import datetime, timezone

from alicerce.demand.matching import (
    active_proposals,
    demand_group_keys,
    eligible_suppliers,
    open_opportunities,
    pending_suppliers,
    responded_suppliers,
)
from alicerce.demand.models import Demand, DemandStatus
from alicerce.supplier.models import Group, SupplierStatus
from tests.helpers import make_item, make_proposal, make_supplier

GROUPS = [Group(group_id="g-1", name="Papelaria"), Group(group_id="g-2", name="Limpeza")]


def _demand(status: DemandStatus, proposals=None, group_id: str = "g-1") -> Demand:
    return Demand(
        demand_id="d-1",
        protocol="ALI.DEM.2025.2002",
        title="Resmas de papel",
        department="Secretaria de Educação",
        status=status,
        items=[make_item("A", group_id=group_id)],
        proposals=proposals or [],
        created_by="u-sec",
        created_at=datetime(2025, 1, 15, tzinfo=timezone.utc),
    )


# ==============================================================================
# Eligibility
# ==============================================================================


def test_group_keys_include_ids_and_names() -> None:
    items = [make_item("A", group_id="g-1"), make_item("B", group_id=None)]

    assert demand_group_keys(items, GROUPS) == {"g-1", "Papelaria"}


def test_active_supplier_with_matching_group_is_eligible() -> None:
    items = [make_item("A", group_id="g-1")]
    suppliers = [
        make_supplier("s-id", ["g-1"]),
        make_supplier("s-name", ["Papelaria"]),
        make_supplier("s-other", ["g-2"]),
    ]

    result = eligible_suppliers(items, suppliers, GROUPS)

    assert result.eligible_ids == ["s-id", "s-name"]
    assert [e.supplier_id for e in result.excluded] == ["s-other"]
    assert result.excluded[0].reasons == ["no matching group"]


def test_non_active_suppliers_are_excluded() -> None:
    items = [make_item("A", group_id="g-1")]
    suppliers = [
        make_supplier("s-pending", ["g-1"], status=SupplierStatus.PENDING),
        make_supplier("s-inactive", ["g-2"], status=SupplierStatus.INACTIVE),
    ]

    result = eligible_suppliers(items, suppliers, GROUPS)

    assert result.eligible == []
    reasons = {e.supplier_id: e.reasons for e in result.excluded}
    assert reasons["s-pending"] == ["status is Pendente"]
    assert reasons["s-inactive"] == ["status is Inativo", "no matching group"]


def test_items_without_group_match_nobody() -> None:
    items = [make_item("A", group_id=None)]

    assert eligible_suppliers(items, [make_supplier("s-1", ["g-1"])], GROUPS).eligible == []


# ==============================================================================
# Active proposals
# ==============================================================================


def test_resubmission_keeps_only_latest_proposal() -> None:
    """Only the most recent submission per supplier counts"""
    first = make_proposal("s-1", {"A": "100"}, submitted_at=datetime(2025, 1, 16))
    second = make_proposal("s-1", {"A": "90"}, submitted_at=datetime(2025, 1, 18))

    active = active_proposals([second, first])

    assert len(active) == 1
    assert active[0].items[0].unit_price == second.items[0].unit_price


def test_declines_are_neither_bids_nor_responses() -> None:
    proposals = [
        make_proposal("s-1", {"A": "10"}),
        make_proposal("s-2", {}, observations="DECLINED_BY_SUPPLIER"),
    ]

    assert [p.supplier_id for p in active_proposals(proposals)] == ["s-1"]
    assert responded_suppliers(proposals) == {"s-1"}


def test_pending_suppliers_keeps_those_who_declined() -> None:
    items = [make_item("A", group_id="g-1")]
    suppliers = [make_supplier(f"s-{n}", ["g-1"]) for n in (1, 2, 3)]
    proposals = [
        make_proposal("s-1", {"A": "10"}),
        make_proposal("s-3", {}, observations="DECLINED_BY_SUPPLIER"),
    ]

    pending = pending_suppliers(items, suppliers, GROUPS, proposals)

    assert [s.supplier_id for s in pending] == ["s-2", "s-3"]


# ==============================================================================
# Opportunities
# ==============================================================================


def test_open_opportunities_for_supplier() -> None:
    supplier = make_supplier("s-1", ["Papelaria"])
    demands = [
        _demand(DemandStatus.OPEN_FOR_PROPOSALS),
        _demand(DemandStatus.DRAFT),
        _demand(DemandStatus.OPEN_FOR_PROPOSALS, group_id="g-2"),
    ]

    assert open_opportunities(supplier, demands, GROUPS) == [demands[0]]


def test_answered_or_declined_demands_are_not_opportunities() -> None:
    supplier = make_supplier("s-1", ["g-1"])
    declined = _demand(
        DemandStatus.OPEN_FOR_PROPOSALS,
        proposals=[make_proposal("s-1", {}, observations="DECLINED_BY_SUPPLIER")],
    )

    assert open_opportunities(supplier, [declined], GROUPS) == []
