"""
Tests for demand models and commands
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from pydantic import TypeAdapter, ValidationError

from alicerce.demand import commands
from alicerce.demand.models import (
    Demand,
    DemandStatus,
    GlobalAward,
    Item,
    ItemAward,
    PerItemAward,
    WinnerDecision,
)
from tests.helpers import make_item, make_proposal


def test_status_values_are_wire_labels() -> None:
    assert DemandStatus.DRAFT.value == "Rascunho"
    assert DemandStatus.OPEN_FOR_PROPOSALS.value == "Em Cotação"
    assert DemandStatus.WAREHOUSE_REVIEW.value == "Aguardando Análise Almoxarifado"
    assert DemandStatus("Vencedor Definido") == DemandStatus.WINNER_DEFINED


def test_item_description_is_trimmed_and_required() -> None:
    item = Item(item_id="i-1", demand_id="d-1", description="  Papel A4  ", quantity=Decimal("5"))
    assert item.description == "Papel A4"
    assert item.unit == "un"

    with pytest.raises(ValidationError):
        Item(item_id="i-1", demand_id="d-1", description="   ", quantity=Decimal("5"))

    with pytest.raises(ValidationError):
        commands.ItemSpec(description="", quantity=Decimal("1"))
    with pytest.raises(ValidationError):
        commands.ItemSpec(description="Papel", quantity=Decimal("0"))


def test_declined_proposal_is_recognized() -> None:
    assert make_proposal("s-1", {}, observations="DECLINED_BY_SUPPLIER").is_declined
    assert make_proposal("s-1", {}, observations="DECLINED_BY_SUPPLIER: sem estoque").is_declined
    assert not make_proposal("s-1", {"i-1": "10"}).is_declined


def test_winner_decision_is_a_tagged_union() -> None:
    adapter = TypeAdapter(WinnerDecision)

    global_award = adapter.validate_python(
        {"mode": "global", "supplier_name": " Acme ", "total_value": "9000"}
    )
    per_item = adapter.validate_python(
        {
            "mode": "item",
            "awards": [{"item_id": "A", "supplier_name": "X", "total_value": "100"}],
        }
    )

    assert isinstance(global_award, GlobalAward)
    assert global_award.supplier_name == "Acme"
    assert isinstance(per_item, PerItemAward)
    assert per_item.awards[0].total_value == Decimal("100")


def test_winner_decision_rejects_malformed_payloads() -> None:
    adapter = TypeAdapter(WinnerDecision)

    with pytest.raises(ValidationError):
        adapter.validate_python({"mode": "lottery", "supplier_name": "Acme", "total_value": 1})
    with pytest.raises(ValidationError):
        adapter.validate_python({"mode": "item", "awards": []})
    with pytest.raises(ValidationError):
        adapter.validate_python({"mode": "global", "supplier_name": "   ", "total_value": 1})


def test_item_award_requires_a_named_supplier() -> None:
    with pytest.raises(ValidationError, match="cannot be blank"):
        PerItemAward(awards=[ItemAward(item_id="A", supplier_name="   ", total_value=Decimal("1"))])

    award = ItemAward(item_id="A", supplier_name="  Acme  ", total_value=Decimal("1"))
    assert award.supplier_name == "Acme"


def test_deadline_without_timezone_is_taken_as_utc() -> None:
    command = commands.PublishDemand(demand_id="d-1", proposal_deadline=datetime(2025, 2, 1, 18, 0))

    assert command.proposal_deadline == datetime(2025, 2, 1, 18, 0, tzinfo=timezone.utc)


def test_move_to_review_target_is_restricted() -> None:
    assert commands.MoveToReview(demand_id="d-1").target == DemandStatus.UNDER_REVIEW

    with pytest.raises(ValidationError):
        commands.MoveToReview(demand_id="d-1", target=DemandStatus.COMPLETED)


def test_demand_lookups() -> None:
    demand = Demand(
        demand_id="d-1",
        protocol="ALI.DEM.2025.1234",
        title="Papel",
        department="Educação",
        items=[make_item("A"), make_item("B")],
        created_by="u-1",
        created_at=datetime(2025, 1, 15, tzinfo=timezone.utc),
    )

    assert demand.item("B").item_id == "B"
    assert demand.item("Z") is None
    assert demand.question("q-1") is None
    assert not demand.is_terminal
    assert demand.model_copy(update={"status": DemandStatus.CLOSED}).is_terminal
