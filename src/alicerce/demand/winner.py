"""
Winner Resolver - from a homologation decision to a canonical winner record

Two modes:
- global: one supplier takes every item for a single total
- item: each item goes to its own supplier; report rows group the awards
  per supplier with summed totals

The resolver also partitions the participants: winners are the suppliers
named in the decision, losers are the suppliers holding an active proposal
who were not named. The proposal ranking here is advisory only; the
homologator may pick anyone.

Fun fact: "Homologar" comes from the Greek homologein, "to say the same
thing" - the authority formally agrees with what the evaluation found.
"""

import re
from collections.abc import Iterable
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from alicerce.demand.matching import active_proposals
from alicerce.demand.models import (
    GlobalAward,
    Item,
    ItemAward,
    PerItemAward,
    Proposal,
    WinnerMode,
    WinnerRecord,
    WinnerReportRow,
)
from alicerce.kernel.errors import WinnerCoverageViolation

_DAYS_PATTERN = re.compile(r"(\d+)\s*dias?", re.IGNORECASE)


class WinnerResolution(BaseModel):
    """Everything the engine needs to persist, notify and audit a homologation"""

    record: WinnerRecord
    rows: list[WinnerReportRow]
    winners: list[str]
    losers: list[str]
    total_value_adjudicated: Decimal
    coverage_gaps: dict[str, list[str]] = Field(default_factory=dict)


class RankedProposal(BaseModel):
    """Proposal with its computed ranking keys"""

    rank: int
    proposal: Proposal
    calculated_total: Decimal
    delivery_days: int | None


# ============================================================================
# Coverage
# ============================================================================


def check_item_coverage(items: Iterable[Item], awards: Iterable[ItemAward]) -> dict[str, list[str]]:
    """
    Compare awarded item ids with the demand's item ids

    Returns:
        Dict with "missing", "unknown" and "duplicated" lists; only the
        non-empty ones are present. Empty dict means exact coverage.
    """
    item_ids = [item.item_id for item in items]
    known = set(item_ids)
    seen: set[str] = set()
    duplicated: list[str] = []
    unknown: list[str] = []

    for award in awards:
        if award.item_id not in known:
            unknown.append(award.item_id)
        elif award.item_id in seen and award.item_id not in duplicated:
            duplicated.append(award.item_id)
        seen.add(award.item_id)

    missing = [item_id for item_id in item_ids if item_id not in seen]

    gaps = {"missing": missing, "unknown": unknown, "duplicated": duplicated}
    return {key: value for key, value in gaps.items() if value}


# ============================================================================
# Resolution
# ============================================================================


def _unique(names: Iterable[str]) -> list[str]:
    seen: dict[str, None] = {}
    for name in names:
        seen.setdefault(name, None)
    return list(seen)


def compute_losers(proposals: Iterable[Proposal], winners: Iterable[str]) -> list[str]:
    """Suppliers with an active proposal who are not among the winners"""
    winner_set = set(winners)
    participants = _unique(p.supplier_name.strip() for p in active_proposals(proposals))
    return [name for name in participants if name not in winner_set]


def _resolve_global(
    decision: GlobalAward, items: list[Item], proposals: list[Proposal]
) -> tuple[list[ItemAward], list[WinnerReportRow]]:
    # Unit prices come from the winner's own proposal when there is one
    prices: dict[str, Decimal] = {}
    for proposal in active_proposals(proposals):
        if proposal.supplier_name.strip() == decision.supplier_name:
            prices = {pi.item_id: pi.unit_price for pi in proposal.items}

    awards = [
        ItemAward(
            item_id=item.item_id,
            supplier_name=decision.supplier_name,
            unit_price=prices.get(item.item_id, Decimal("0")),
            total_value=prices.get(item.item_id, Decimal("0")) * item.quantity,
        )
        for item in items
    ]
    rows = [
        WinnerReportRow(
            supplier_name=decision.supplier_name,
            item_ids=[item.item_id for item in items],
            total_value=decision.total_value,
        )
    ]
    return awards, rows


def _resolve_per_item(decision: PerItemAward) -> tuple[list[ItemAward], list[WinnerReportRow]]:
    awards = [
        award.model_copy(update={"supplier_name": award.supplier_name.strip()})
        for award in decision.awards
    ]
    grouped: dict[str, WinnerReportRow] = {}
    for award in awards:
        row = grouped.get(award.supplier_name)
        if row is None:
            grouped[award.supplier_name] = WinnerReportRow(
                supplier_name=award.supplier_name,
                item_ids=[award.item_id],
                total_value=award.total_value,
            )
        else:
            row.item_ids.append(award.item_id)
            row.total_value += award.total_value
    return awards, list(grouped.values())


def resolve_winner(
    demand_id: str,
    decision: GlobalAward | PerItemAward,
    items: list[Item],
    proposals: list[Proposal],
    decided_at: datetime,
    decided_by: str,
    enforce_coverage: bool = True,
) -> WinnerResolution:
    """
    Resolve a homologation decision against the demand's items and proposals

    Args:
        demand_id: Demand being homologated (for error messages)
        decision: GlobalAward or PerItemAward
        items: Demand items
        proposals: Demand proposals (all of them; declines are filtered here)
        decided_at: Decision timestamp
        decided_by: Name of the homologating user
        enforce_coverage: Raise on item-mode coverage gaps instead of reporting them

    Returns:
        WinnerResolution with record, rows, winners, losers and the total

    Raises:
        WinnerCoverageViolation: Item mode with missing, unknown or repeated
            items while enforce_coverage is on
    """
    gaps: dict[str, list[str]] = {}

    if isinstance(decision, GlobalAward):
        mode = WinnerMode.GLOBAL
        awards, rows = _resolve_global(decision, items, proposals)
        supplier_name: str | None = decision.supplier_name
    else:
        mode = WinnerMode.ITEM
        gaps = check_item_coverage(items, decision.awards)
        if gaps and enforce_coverage:
            raise WinnerCoverageViolation(
                demand_id,
                missing=gaps.get("missing", []),
                unknown=gaps.get("unknown", []),
                duplicated=gaps.get("duplicated", []),
            )
        awards, rows = _resolve_per_item(decision)
        supplier_name = None

    winners = [row.supplier_name for row in rows]
    total = sum((row.total_value for row in rows), Decimal("0"))

    record = WinnerRecord(
        mode=mode,
        supplier_name=supplier_name,
        total_value=total,
        justification=decision.justification,
        awards=awards,
        decided_at=decided_at,
        decided_by=decided_by,
    )

    return WinnerResolution(
        record=record,
        rows=rows,
        winners=winners,
        losers=compute_losers(proposals, winners),
        total_value_adjudicated=total,
        coverage_gaps=gaps,
    )


# ============================================================================
# Advisory ranking
# ============================================================================


def parse_delivery_days(delivery_time: str | None) -> int | None:
    """
    Extract the number of days from offers like "10 dias" or "1 dia (Antecipado)"

    Returns None for "Conforme Edital" and other free text.
    """
    if not delivery_time:
        return None
    match = _DAYS_PATTERN.search(delivery_time)
    if match:
        return int(match.group(1))
    stripped = delivery_time.strip()
    return int(stripped) if stripped.isdigit() else None


def calculated_total(proposal: Proposal, items: Iterable[Item]) -> Decimal:
    """Declared total, or unit price x quantity summed when none was given"""
    if proposal.total_value > 0:
        return proposal.total_value
    quantities = {item.item_id: item.quantity for item in items}
    return sum(
        (pi.unit_price * quantities.get(pi.item_id, Decimal("0")) for pi in proposal.items),
        Decimal("0"),
    )


def rank_proposals(proposals: Iterable[Proposal], items: Iterable[Item]) -> list[RankedProposal]:
    """
    Rank active proposals: lowest total, then shortest delivery, then name

    Offers without a parseable delivery time sort after those with one.
    """
    item_list = list(items)
    keyed = [
        (calculated_total(p, item_list), parse_delivery_days(p.delivery_time), p)
        for p in active_proposals(proposals)
    ]
    keyed.sort(
        key=lambda entry: (
            entry[0],
            entry[1] is None,
            entry[1] if entry[1] is not None else 0,
            entry[2].supplier_name,
        )
    )
    return [
        RankedProposal(rank=position, proposal=p, calculated_total=total, delivery_days=days)
        for position, (total, days, p) in enumerate(keyed, start=1)
    ]
