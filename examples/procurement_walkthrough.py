"""
Procurement Walkthrough - A demand from draft to homologation

This example demonstrates:
- Registering supply groups and approving suppliers
- Drafting a demand and publishing it to the eligible suppliers
- Proposals, a decline and a clarification question
- Ranking proposals and homologating the winner (global and per item)
- Reading back the audit trail
"""

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

from alicerce import Alicerce
from alicerce.kernel.errors import AlicerceError
from alicerce.kernel.identity import CurrentUser, Role
from alicerce.notify.notifier import SimulatedNotifier

PROCUREMENT = CurrentUser(user_id="u-dc", name="Ana Prado", role=Role.PROCUREMENT)
SECRETARIAT = CurrentUser(user_id="u-sec", name="Bruno Lima", role=Role.SECRETARIAT)


def supplier_user(supplier_id: str) -> CurrentUser:
    return CurrentUser(
        user_id=f"u-{supplier_id}", name="Vendas", role=Role.SUPPLIER, supplier_id=supplier_id
    )


def setup_directory(app: Alicerce) -> dict[str, str]:
    """One group, three approved suppliers; returns name -> supplier_id"""
    group = app.create_group(PROCUREMENT, "Papelaria")
    suppliers = {}
    for name in ("Papelaria Central", "Escritório Total", "Gráfica Norte"):
        supplier = app.register_supplier(
            PROCUREMENT,
            name=name,
            email=f"vendas@{name.split()[0].lower()}.example.com",
            groups=[group.group_id],
        )
        app.approve_supplier(PROCUREMENT, supplier.supplier_id)
        suppliers[name] = supplier.supplier_id
    suppliers["group_id"] = group.group_id
    return suppliers


def example_1_global_winner():
    """
    Example 1: Global Winner

    Demonstrates:
    - Publication notifies every active supplier of the group
    - A supplier declines, another asks a question
    - The lowest bidder is homologated for the whole demand
    """
    print("\n=== Example 1: Global Winner ===\n")

    with tempfile.TemporaryDirectory() as tmpdir:
        notifier = SimulatedNotifier()
        app = Alicerce(Path(tmpdir) / "example1.db", notifier=notifier)
        directory = setup_directory(app)

        demand = app.create_demand(
            SECRETARIAT,
            title="Material de escritório",
            department="Secretaria de Educação",
            contact_email="educacao@prefeitura.example.gov.br",
            items=[
                {"description": "Resma de papel A4", "quantity": 50, "group_id": directory["group_id"]},
                {"description": "Caneta azul", "quantity": 200, "group_id": directory["group_id"]},
            ],
        )
        print(f"✓ Demand created: {demand.protocol} ({demand.status.value})")

        deadline = datetime.now(timezone.utc) + timedelta(days=10)
        result = app.publish_demand(PROCUREMENT, demand.demand_id, proposal_deadline=deadline)
        print(f"✓ Published, notified {result.notifications.sent} suppliers")

        paper, pen = (item.item_id for item in result.demand.items)
        bids = {"Papelaria Central": ("24.90", "1.10"), "Escritório Total": ("23.50", "1.40")}
        for name, (paper_price, pen_price) in bids.items():
            app.submit_proposal(
                supplier_user(directory[name]),
                demand.demand_id,
                directory[name],
                items=[
                    {"item_id": paper, "unit_price": paper_price},
                    {"item_id": pen, "unit_price": pen_price},
                ],
                delivery_time="7 dias",
            )
            print(f"  {name} bid on both items")

        graphic = directory["Gráfica Norte"]
        app.decline_opportunity(supplier_user(graphic), demand.demand_id, graphic, "Sem estoque")
        print("  Gráfica Norte declined")

        asked = app.ask_question(
            supplier_user(directory["Papelaria Central"]),
            demand.demand_id,
            directory["Papelaria Central"],
            "Aceita papel reciclado?",
        )
        question_id = asked.demand.questions[-1].question_id
        app.answer_question(PROCUREMENT, demand.demand_id, question_id, "Sim, com alvura mínima de 90%.")
        print("✓ Question answered")

        print("\nRanking:")
        for ranked in app.ranked_proposals(demand.demand_id):
            print(f"  {ranked.rank}. {ranked.proposal.supplier_name}: R$ {ranked.calculated_total}")

        app.move_to_review(PROCUREMENT, demand.demand_id)
        best = app.ranked_proposals(demand.demand_id)[0]
        result = app.define_winner(
            PROCUREMENT,
            demand.demand_id,
            {
                "mode": "global",
                "supplier_name": best.proposal.supplier_name,
                "total_value": str(best.calculated_total),
            },
        )
        print(f"\n✓ Winner: {', '.join(result.resolution.winners)}")
        print(f"  Losers notified: {', '.join(result.resolution.losers)}")

        app.complete_demand(PROCUREMENT, demand.demand_id, observations="Empenho 2025/0042")

        print("\nAudit trail:")
        for entry in app.audit_trail(resource_id=demand.demand_id):
            print(f"  {entry.action}")
        print(f"\nE-mails sent: {len(notifier.addresses())}")


def example_2_per_item_winners():
    """
    Example 2: Per-Item Winners

    Demonstrates:
    - Each item awarded to its lowest bidder
    - Coverage: every item must be awarded
    """
    print("\n=== Example 2: Per-Item Winners ===\n")

    with tempfile.TemporaryDirectory() as tmpdir:
        app = Alicerce(Path(tmpdir) / "example2.db")
        directory = setup_directory(app)

        demand = app.create_demand(
            PROCUREMENT,
            title="Toner e papel",
            department="Secretaria de Saúde",
            items=[
                {"description": "Resma de papel A4", "quantity": 10, "group_id": directory["group_id"]},
                {"description": "Toner preto", "quantity": 4, "group_id": directory["group_id"]},
            ],
            proposal_deadline=datetime.now(timezone.utc) + timedelta(days=5),
        )
        demand = app.publish_demand(PROCUREMENT, demand.demand_id).demand
        paper, toner = (item.item_id for item in demand.items)

        app.submit_proposal(
            supplier_user(directory["Papelaria Central"]),
            demand.demand_id,
            directory["Papelaria Central"],
            items=[{"item_id": paper, "unit_price": "22"}, {"item_id": toner, "unit_price": "310"}],
        )
        app.submit_proposal(
            supplier_user(directory["Gráfica Norte"]),
            demand.demand_id,
            directory["Gráfica Norte"],
            items=[{"item_id": paper, "unit_price": "26"}, {"item_id": toner, "unit_price": "280"}],
        )
        app.move_to_review(PROCUREMENT, demand.demand_id)

        partial = {
            "mode": "item",
            "awards": [{"item_id": paper, "supplier_name": "Papelaria Central", "total_value": "220"}],
        }
        try:
            app.define_winner(PROCUREMENT, demand.demand_id, partial)
        except AlicerceError as e:
            print(f"✗ Partial award refused: {e}")

        full = {
            "mode": "item",
            "awards": [
                {"item_id": paper, "supplier_name": "Papelaria Central", "unit_price": "22", "total_value": "220"},
                {"item_id": toner, "supplier_name": "Gráfica Norte", "unit_price": "280", "total_value": "1120"},
            ],
        }
        result = app.define_winner(PROCUREMENT, demand.demand_id, full)
        for row in result.resolution.rows:
            print(f"✓ {row.supplier_name}: {len(row.item_ids)} item(s), R$ {row.total_value}")
        print(f"  Total adjudicated: R$ {result.resolution.total_value_adjudicated}")


if __name__ == "__main__":
    print("=" * 70)
    print("Alicerce - Procurement Walkthrough")
    print("=" * 70)

    example_1_global_winner()
    example_2_per_item_winners()

    print("\n" + "=" * 70)
    print("✓ All examples completed successfully!")
    print("=" * 70)
