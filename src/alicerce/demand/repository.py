"""
Demand Repository - assembles Demand aggregates from the store

Demands, items, proposals and questions live in separate collections. The
repository is the only place that knows how they map to records and back.
"""

from typing import Any

from alicerce.demand.models import Demand, DemandStatus, Item, Proposal, Question
from alicerce.kernel.errors import DemandNotFound
from alicerce.kernel.store import Store

_CHILD_FIELDS = {"items", "proposals", "questions", "version"}


def proposal_key(demand_id: str, supplier_id: str) -> str:
    """Proposal record id: one proposal per (demand, supplier)"""
    return f"{demand_id}:{supplier_id}"


def demand_record(demand: Demand) -> dict[str, Any]:
    data = demand.model_dump(mode="json", exclude=_CHILD_FIELDS)
    data["id"] = demand.demand_id
    return data


def item_record(item: Item) -> dict[str, Any]:
    return {"id": item.item_id, **item.model_dump(mode="json")}


def proposal_record(proposal: Proposal) -> dict[str, Any]:
    return {"id": proposal.proposal_id, **proposal.model_dump(mode="json")}


def question_record(question: Question) -> dict[str, Any]:
    return {"id": question.question_id, **question.model_dump(mode="json")}


class DemandRepository:
    """Read side of the demand collections"""

    def __init__(self, store: Store) -> None:
        self.store = store

    def _assemble(self, record: dict[str, Any]) -> Demand:
        demand_id = record["id"]
        return Demand.model_validate(
            {
                **record,
                "items": self.store.list("items", {"demand_id": demand_id}),
                "proposals": self.store.list("proposals", {"demand_id": demand_id}),
                "questions": self.store.list("questions", {"demand_id": demand_id}),
            }
        )

    def load(self, demand_id: str) -> Demand:
        """
        Load a demand with its items, proposals and questions

        Raises:
            DemandNotFound: If no such demand exists
        """
        record = self.store.get("demands", demand_id)
        if record is None:
            raise DemandNotFound(demand_id)
        return self._assemble(record)

    def list(self, status: DemandStatus | None = None) -> list[Demand]:
        filter = {"status": status.value} if status else None
        return [self._assemble(r) for r in self.store.list("demands", filter)]

    def protocol_taken(self, protocol: str) -> bool:
        return bool(self.store.list("demands", {"protocol": protocol}))

    def status_counts(self) -> dict[str, int]:
        counts = {status.value: 0 for status in DemandStatus}
        for record in self.store.list("demands"):
            counts[record["status"]] = counts.get(record["status"], 0) + 1
        return counts
