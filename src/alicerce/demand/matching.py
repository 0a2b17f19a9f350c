"""
Supplier Matching - who should hear about a demand

Binary matching: a supplier is eligible when it is Active and serves at
least one group used by the demand's items. No scoring, no ranking.

Supplier records list groups either by id or by name (older registrations
stored names), so both are accepted.
"""

from collections.abc import Iterable

from pydantic import BaseModel, Field

from alicerce.demand.models import Demand, DemandStatus, Item, Proposal
from alicerce.supplier.models import Group, Supplier


class ExcludedSupplier(BaseModel):
    supplier_id: str
    supplier_name: str
    reasons: list[str]


class MatchResult(BaseModel):
    """Outcome of matching a demand against the supplier directory"""

    eligible: list[Supplier] = Field(default_factory=list)
    excluded: list[ExcludedSupplier] = Field(default_factory=list)

    @property
    def eligible_ids(self) -> list[str]:
        return [s.supplier_id for s in self.eligible]


def demand_group_keys(items: Iterable[Item], groups: Iterable[Group]) -> set[str]:
    """
    Union of the items' groups, as both ids and names

    Args:
        items: Demand items
        groups: Group reference data (id -> name)

    Returns:
        Set containing every group id used and its name
    """
    names_by_id = {g.group_id: g.name for g in groups}
    keys: set[str] = set()
    for item in items:
        if not item.group_id:
            continue
        keys.add(item.group_id)
        if item.group_id in names_by_id:
            keys.add(names_by_id[item.group_id])
    return keys


def eligible_suppliers(
    items: Iterable[Item],
    suppliers: Iterable[Supplier],
    groups: Iterable[Group],
) -> MatchResult:
    """
    Compute the Active suppliers whose groups intersect the demand's groups

    Feasible set F = { s | s.status = Active ∧ s.groups ∩ G(items) ≠ ∅ }

    Args:
        items: Demand items (each with a group reference)
        suppliers: Supplier directory
        groups: Group reference data

    Returns:
        MatchResult with eligible suppliers and the excluded ones with reasons

    Example:
        >>> result = eligible_suppliers(demand.items, suppliers, groups)
        >>> [s.name for s in result.eligible]
        ['Papelaria Central']
    """
    wanted = demand_group_keys(items, groups)
    result = MatchResult()

    for supplier in suppliers:
        reasons: list[str] = []
        if not supplier.is_active:
            reasons.append(f"status is {supplier.status.value}")
        if not wanted.intersection(supplier.groups):
            reasons.append("no matching group")

        if reasons:
            result.excluded.append(
                ExcludedSupplier(
                    supplier_id=supplier.supplier_id,
                    supplier_name=supplier.name,
                    reasons=reasons,
                )
            )
        else:
            result.eligible.append(supplier)

    return result


def active_proposals(proposals: Iterable[Proposal]) -> list[Proposal]:
    """
    Latest proposal per supplier, declines dropped

    Proposals are already unique per supplier in the store; the latest
    submission wins if a caller passes several.
    """
    latest: dict[str, Proposal] = {}
    for proposal in proposals:
        current = latest.get(proposal.supplier_id)
        if current is None or proposal.submitted_at >= current.submitted_at:
            latest[proposal.supplier_id] = proposal
    return [p for p in latest.values() if not p.is_declined]


def responded_suppliers(proposals: Iterable[Proposal]) -> set[str]:
    """Supplier ids holding an active proposal (declines do not count)"""
    return {p.supplier_id for p in active_proposals(proposals)}


def pending_suppliers(
    items: Iterable[Item],
    suppliers: Iterable[Supplier],
    groups: Iterable[Group],
    proposals: Iterable[Proposal],
) -> list[Supplier]:
    """
    Eligible suppliers without an active proposal (the "still open" view)

    A supplier that declined stays pending. Publication fan-out uses
    eligible_suppliers() instead, regardless of earlier responses.
    """
    responded = responded_suppliers(proposals)
    match = eligible_suppliers(items, suppliers, groups)
    return [s for s in match.eligible if s.supplier_id not in responded]


def open_opportunities(
    supplier: Supplier,
    demands: Iterable[Demand],
    groups: Iterable[Group],
) -> list[Demand]:
    """
    Demands open for proposals that this supplier can still answer

    Declining counts as answering: a supplier that opted out no longer sees
    the opportunity.
    """
    group_list = list(groups)
    opportunities = []
    for demand in demands:
        if demand.status != DemandStatus.OPEN_FOR_PROPOSALS:
            continue
        if any(p.supplier_id == supplier.supplier_id for p in demand.proposals):
            continue
        match = eligible_suppliers(demand.items, [supplier], group_list)
        if match.eligible:
            opportunities.append(demand)
    return opportunities
