"""
Alicerce CLI

Command-line interface for the demand lifecycle engine.
Provides commands for demands, suppliers, proposals, questions and the audit trail.

Usage:
    alicerce init --db alicerce.db
    alicerce group create --name "Material de Escritório"
    alicerce supplier register --name "Papelaria Central" --email vendas@papelaria.com --groups <group_id>
    alicerce supplier approve --id <supplier_id>
    alicerce demand create --title "Papel A4" --department "Educação" --items '[{"description": "Resma", "quantity": 50, "group_id": "<group_id>"}]'
    alicerce demand publish --id <demand_id> --deadline 2025-02-10
    alicerce proposal submit --demand <demand_id> --supplier <supplier_id> --items '[...]' --role SUPPLIER
    alicerce demand review --id <demand_id>
    alicerce demand winner --id <demand_id> --decision '{"mode": "global", "supplier_name": "Papelaria Central", "total_value": "1234.50"}'
    alicerce audit list --resource <demand_id>

The acting user is given with --user/--role (and --supplier for supplier users).
"""

import json
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import typer
from pydantic import BaseModel, ValidationError
from typing_extensions import Annotated

from alicerce.app import Alicerce
from alicerce.demand.models import Demand, DemandStatus, DemandType, Priority
from alicerce.kernel.errors import AlicerceError
from alicerce.kernel.identity import CurrentUser, Role
from alicerce.kernel.logging import configure_logging
from alicerce.kernel.settings import EngineSettings
from alicerce.kernel.time import parse_deadline
from alicerce.notify.templates import format_brl, format_date
from alicerce.supplier.models import SupplierStatus

# Logs go to stderr; level and format from ALICERCE_LOG_LEVEL and ALICERCE_LOG_JSON
configure_logging()

app = typer.Typer(
    name="alicerce",
    help="Alicerce - Demand lifecycle engine for municipal procurement",
    add_completion=False,
)

# Sub-apps
demand_app = typer.Typer(help="Demand lifecycle commands")
supplier_app = typer.Typer(help="Supplier directory commands")
group_app = typer.Typer(help="Supplier group commands")
proposal_app = typer.Typer(help="Proposal commands (supplier side)")
question_app = typer.Typer(help="Question and answer commands")
audit_app = typer.Typer(help="Audit trail commands")

app.add_typer(demand_app, name="demand")
app.add_typer(supplier_app, name="supplier")
app.add_typer(group_app, name="group")
app.add_typer(proposal_app, name="proposal")
app.add_typer(question_app, name="question")
app.add_typer(audit_app, name="audit")

# Global state
DEFAULT_DB = Path(".alicerce.db")

DbOption = Annotated[
    Optional[Path],
    typer.Option("--db", envvar="ALICERCE_DB", help="Database path"),
]
UserOption = Annotated[str, typer.Option("--user", help="Acting user id")]
RoleOption = Annotated[
    str,
    typer.Option("--role", help="Acting role (e.g. PROCUREMENT, WAREHOUSE, SUPPLIER, ADMIN)"),
]
JsonOption = Annotated[bool, typer.Option("--json", help="Output as JSON")]


def get_app(db_path: Optional[Path] = None) -> Alicerce:
    """Get Alicerce instance"""
    db = db_path or DEFAULT_DB
    if not db.exists():
        typer.echo(f"Error: Database not found: {db}", err=True)
        typer.echo(f"Run 'alicerce init --db {db}' to initialize", err=True)
        raise typer.Exit(1)
    return Alicerce(str(db), settings=EngineSettings())


def parse_role(role: str) -> Role:
    """Accept enum names (PROCUREMENT) or wire labels (Almoxarifado)"""
    try:
        return Role[role.upper()]
    except KeyError:
        pass
    try:
        return Role(role)
    except ValueError:
        names = ", ".join(r.name for r in Role)
        typer.echo(f"Error: Unknown role '{role}' (expected one of {names})", err=True)
        raise typer.Exit(1)


def parse_status(status: str) -> DemandStatus:
    try:
        return DemandStatus[status.upper()]
    except KeyError:
        pass
    try:
        return DemandStatus(status)
    except ValueError:
        typer.echo(f"Error: Unknown status '{status}'", err=True)
        raise typer.Exit(1)


def parse_deadline_option(value: Optional[str]) -> Optional[datetime]:
    """ISO date or datetime; dates mean end of day, UTC"""
    if not value:
        return None
    try:
        return parse_deadline(value)
    except ValueError:
        typer.echo(f"Error: Invalid deadline '{value}' (expected YYYY-MM-DD)", err=True)
        raise typer.Exit(1)


def current_user(user: str, role: str, supplier_id: Optional[str] = None) -> CurrentUser:
    parsed = parse_role(role)
    return CurrentUser(
        user_id=user,
        name=user,
        role=parsed,
        supplier_id=supplier_id if parsed == Role.SUPPLIER else None,
    )


@contextmanager
def handle_errors() -> Iterator[None]:
    """Turn engine and input errors into a message and exit code 1"""
    try:
        yield
    except (AlicerceError, ValidationError, json.JSONDecodeError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


def echo_json(value: Any) -> None:
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json")
    elif isinstance(value, list):
        value = [v.model_dump(mode="json") if isinstance(v, BaseModel) else v for v in value]
    typer.echo(json.dumps(value, indent=2, ensure_ascii=False, default=str))


def echo_demand(demand: Demand) -> None:
    typer.echo(f"Demand: {demand.demand_id}")
    typer.echo(f"  Protocol: {demand.protocol}")
    typer.echo(f"  Title: {demand.title}")
    typer.echo(f"  Department: {demand.department}")
    typer.echo(f"  Status: {demand.status.value}")
    typer.echo(f"  Deadline: {format_date(demand.proposal_deadline)}")
    typer.echo(f"  Items: {len(demand.items)}")
    for item in demand.items:
        typer.echo(f"    {item.item_id}: {item.description} ({item.quantity} {item.unit})")
    if demand.proposals:
        typer.echo(f"  Proposals: {len(demand.proposals)}")
    if demand.winner:
        typer.echo(f"  Winner: {demand.winner.supplier_name or 'por item'}")
        typer.echo(f"  Total: {format_brl(demand.winner.total_value)}")


# Initialization command


@app.command()
def init(
    db: Annotated[
        Path,
        typer.Option("--db", envvar="ALICERCE_DB", help="Database path"),
    ] = DEFAULT_DB,
) -> None:
    """Initialize a new Alicerce database"""
    if db.exists():
        typer.echo(f"Error: Database already exists: {db}", err=True)
        raise typer.Exit(1)

    # Create database by initializing Alicerce
    Alicerce(str(db))
    typer.echo(f"✓ Initialized Alicerce database: {db}")


@app.command()
def health(
    json_output: JsonOption = False,
    db: DbOption = None,
) -> None:
    """Show demands by status and directory size"""
    alicerce = get_app(db)
    summary = alicerce.health()

    if json_output:
        echo_json(summary)
        return

    typer.echo(f"Demands: {summary['total_demands']}")
    for status, count in summary["demands_by_status"].items():
        if count:
            typer.echo(f"  {status}: {count}")
    typer.echo(f"Suppliers: {summary['suppliers']} ({summary['active_suppliers']} active)")
    typer.echo(f"Audit entries: {summary['audit_entries']}")


# Demand commands


@demand_app.command("create")
def demand_create(
    title: Annotated[str, typer.Option("--title", help="Demand title")],
    department: Annotated[str, typer.Option("--department", help="Requesting department")],
    items: Annotated[
        str,
        typer.Option("--items", help="Items (JSON array of {description, quantity, unit, group_id})"),
    ] = "[]",
    email: Annotated[
        Optional[str],
        typer.Option("--email", help="Department contact e-mail"),
    ] = None,
    deadline: Annotated[
        Optional[str],
        typer.Option("--deadline", help="Proposal deadline (ISO date)"),
    ] = None,
    description: Annotated[str, typer.Option("--description", help="Description")] = "",
    demand_type: Annotated[
        DemandType,
        typer.Option("--type", help="Demand type"),
    ] = DemandType.MATERIALS,
    priority: Annotated[
        Priority,
        typer.Option("--priority", help="Priority"),
    ] = Priority.MEDIUM,
    suggest_deadline: Annotated[
        bool,
        typer.Option("--suggest-deadline", help="Use the business-day deadline for type and priority"),
    ] = False,
    user: UserOption = "cli",
    role: RoleOption = "SECRETARIAT",
    db: DbOption = None,
) -> None:
    """Create a demand in draft"""
    alicerce = get_app(db)

    proposal_deadline = parse_deadline_option(deadline)
    if proposal_deadline is None and suggest_deadline:
        proposal_deadline = alicerce.suggest_deadline(demand_type, priority)

    with handle_errors():
        demand = alicerce.create_demand(
            current_user(user, role),
            title=title,
            department=department,
            items=json.loads(items),
            contact_email=email,
            proposal_deadline=proposal_deadline,
            description=description,
            demand_type=demand_type,
            priority=priority,
        )

    typer.echo(f"✓ Created demand: {demand.demand_id}")
    typer.echo(f"  Protocol: {demand.protocol}")
    typer.echo(f"  Status: {demand.status.value}")
    typer.echo(f"  Items: {len(demand.items)}")
    if demand.proposal_deadline:
        typer.echo(f"  Deadline: {format_date(demand.proposal_deadline)}")


@demand_app.command("publish")
def demand_publish(
    demand_id: Annotated[str, typer.Option("--id", help="Demand ID")],
    deadline: Annotated[
        Optional[str],
        typer.Option("--deadline", help="Proposal deadline (ISO date)"),
    ] = None,
    user: UserOption = "cli",
    role: RoleOption = "PROCUREMENT",
    db: DbOption = None,
) -> None:
    """Open a demand for proposals and notify matching suppliers"""
    alicerce = get_app(db)

    with handle_errors():
        result = alicerce.publish_demand(
            current_user(user, role), demand_id, proposal_deadline=parse_deadline_option(deadline)
        )

    report = result.notifications
    typer.echo(f"✓ Published demand: {demand_id}")
    typer.echo(f"  Deadline: {format_date(result.demand.proposal_deadline)}")
    typer.echo(f"  Notified: {report.sent} sent, {report.failed} failed, {report.skipped} skipped")


@demand_app.command("approve")
def demand_approve(
    demand_id: Annotated[str, typer.Option("--id", help="Demand ID")],
    observations: Annotated[
        Optional[str],
        typer.Option("--observations", help="Warehouse observations"),
    ] = None,
    items: Annotated[
        Optional[str],
        typer.Option("--items", help="Corrected items (JSON array)"),
    ] = None,
    deadline: Annotated[
        Optional[str],
        typer.Option("--deadline", help="Proposal deadline (ISO date)"),
    ] = None,
    user: UserOption = "cli",
    role: RoleOption = "WAREHOUSE",
    db: DbOption = None,
) -> None:
    """Warehouse sign-off: open the demand for proposals"""
    alicerce = get_app(db)

    with handle_errors():
        result = alicerce.warehouse_approve(
            current_user(user, role),
            demand_id,
            observations=observations,
            items=json.loads(items) if items else None,
            proposal_deadline=parse_deadline_option(deadline),
        )

    typer.echo(f"✓ Approved demand: {demand_id}")
    typer.echo(f"  Status: {result.demand.status.value}")
    typer.echo(f"  Notified: {result.notifications.sent} sent")


@demand_app.command("review")
def demand_review(
    demand_id: Annotated[str, typer.Option("--id", help="Demand ID")],
    target: Annotated[
        str,
        typer.Option("--target", help="UNDER_REVIEW or WAREHOUSE_REVIEW"),
    ] = "UNDER_REVIEW",
    reason: Annotated[Optional[str], typer.Option("--reason", help="Reason")] = None,
    user: UserOption = "cli",
    role: RoleOption = "PROCUREMENT",
    db: DbOption = None,
) -> None:
    """Stop collecting proposals and start the analysis"""
    alicerce = get_app(db)

    with handle_errors():
        demand = alicerce.move_to_review(
            current_user(user, role), demand_id, target=parse_status(target), reason=reason
        )

    typer.echo(f"✓ Demand {demand_id} is now: {demand.status.value}")


@demand_app.command("winner")
def demand_winner(
    demand_id: Annotated[str, typer.Option("--id", help="Demand ID")],
    decision: Annotated[
        str,
        typer.Option("--decision", help="Decision (JSON, mode 'global' or 'item')"),
    ],
    user: UserOption = "cli",
    role: RoleOption = "PROCUREMENT",
    db: DbOption = None,
) -> None:
    """Homologate the winner(s) of a demand"""
    alicerce = get_app(db)

    with handle_errors():
        result = alicerce.define_winner(current_user(user, role), demand_id, json.loads(decision))

    resolution = result.resolution
    if resolution is None:
        typer.echo(f"Error: No winner resolution for demand {demand_id}", err=True)
        raise typer.Exit(1)
    typer.echo(f"✓ Winner defined for demand: {demand_id}")
    for row in resolution.rows:
        typer.echo(f"  {row.supplier_name}: {format_brl(row.total_value)} ({len(row.item_ids)} items)")
    typer.echo(f"  Total: {format_brl(resolution.total_value_adjudicated)}")
    if resolution.losers:
        typer.echo(f"  Not selected: {', '.join(resolution.losers)}")
    report = result.notifications
    typer.echo(f"  Notified: {report.sent} sent, {report.failed} failed, {report.skipped} skipped")


@demand_app.command("reject")
def demand_reject(
    demand_id: Annotated[str, typer.Option("--id", help="Demand ID")],
    reason: Annotated[str, typer.Option("--reason", help="Rejection reason")],
    user: UserOption = "cli",
    role: RoleOption = "PROCUREMENT",
    db: DbOption = None,
) -> None:
    """Reject a demand"""
    alicerce = get_app(db)

    with handle_errors():
        demand = alicerce.reject_demand(current_user(user, role), demand_id, reason)

    typer.echo(f"✓ Demand {demand_id} is now: {demand.status.value}")


@demand_app.command("cancel")
def demand_cancel(
    demand_id: Annotated[str, typer.Option("--id", help="Demand ID")],
    reason: Annotated[str, typer.Option("--reason", help="Cancellation reason")],
    user: UserOption = "cli",
    role: RoleOption = "PROCUREMENT",
    db: DbOption = None,
) -> None:
    """Cancel a demand"""
    alicerce = get_app(db)

    with handle_errors():
        demand = alicerce.cancel_demand(current_user(user, role), demand_id, reason)

    typer.echo(f"✓ Demand {demand_id} is now: {demand.status.value}")


@demand_app.command("complete")
def demand_complete(
    demand_id: Annotated[str, typer.Option("--id", help="Demand ID")],
    observations: Annotated[Optional[str], typer.Option("--observations")] = None,
    user: UserOption = "cli",
    role: RoleOption = "PROCUREMENT",
    db: DbOption = None,
) -> None:
    """Mark a homologated demand as completed"""
    alicerce = get_app(db)

    with handle_errors():
        demand = alicerce.complete_demand(current_user(user, role), demand_id, observations)

    typer.echo(f"✓ Demand {demand_id} is now: {demand.status.value}")


@demand_app.command("close")
def demand_close(
    demand_id: Annotated[str, typer.Option("--id", help="Demand ID")],
    observations: Annotated[Optional[str], typer.Option("--observations")] = None,
    user: UserOption = "cli",
    role: RoleOption = "PROCUREMENT",
    db: DbOption = None,
) -> None:
    """Close a homologated demand"""
    alicerce = get_app(db)

    with handle_errors():
        demand = alicerce.close_demand(current_user(user, role), demand_id, observations)

    typer.echo(f"✓ Demand {demand_id} is now: {demand.status.value}")


@demand_app.command("update-items")
def demand_update_items(
    demand_id: Annotated[str, typer.Option("--id", help="Demand ID")],
    items: Annotated[str, typer.Option("--items", help="Corrected items (JSON array; keep item_id on existing lines)")],
    reason: Annotated[Optional[str], typer.Option("--reason", help="Reason")] = None,
    user: UserOption = "cli",
    role: RoleOption = "WAREHOUSE",
    db: DbOption = None,
) -> None:
    """Correct a demand's items"""
    alicerce = get_app(db)

    with handle_errors():
        demand = alicerce.update_items(
            current_user(user, role), demand_id, json.loads(items), reason=reason
        )

    typer.echo(f"✓ Demand {demand_id} now has {len(demand.items)} items")


@demand_app.command("delete")
def demand_delete(
    demand_id: Annotated[str, typer.Option("--id", help="Demand ID")],
    user: UserOption = "cli",
    role: RoleOption = "ADMIN",
    db: DbOption = None,
) -> None:
    """Delete a demand and everything attached to it"""
    alicerce = get_app(db)

    with handle_errors():
        alicerce.delete_demand(current_user(user, role), demand_id)

    typer.echo(f"✓ Deleted demand: {demand_id}")


@demand_app.command("list")
def demand_list(
    status: Annotated[
        Optional[str],
        typer.Option("--status", help="Filter by status (e.g. OPEN_FOR_PROPOSALS)"),
    ] = None,
    json_output: JsonOption = False,
    db: DbOption = None,
) -> None:
    """List demands"""
    alicerce = get_app(db)

    demands = alicerce.list_demands(parse_status(status) if status else None)

    if json_output:
        echo_json(demands)
        return

    if not demands:
        typer.echo("No demands")
        return

    typer.echo(f"Demands ({len(demands)}):")
    for demand in demands:
        typer.echo(f"  {demand.demand_id}: {demand.protocol} {demand.title} [{demand.status.value}]")


@demand_app.command("show")
def demand_show(
    demand_id: Annotated[str, typer.Option("--id", help="Demand ID")],
    json_output: JsonOption = False,
    db: DbOption = None,
) -> None:
    """Show demand details"""
    alicerce = get_app(db)

    with handle_errors():
        demand = alicerce.get_demand(demand_id)

    if json_output:
        echo_json(demand)
    else:
        echo_demand(demand)


@demand_app.command("ranking")
def demand_ranking(
    demand_id: Annotated[str, typer.Option("--id", help="Demand ID")],
    json_output: JsonOption = False,
    db: DbOption = None,
) -> None:
    """Rank the active proposals (lowest total, then fastest delivery)"""
    alicerce = get_app(db)

    with handle_errors():
        ranking = alicerce.ranked_proposals(demand_id)

    if json_output:
        echo_json(ranking)
        return

    if not ranking:
        typer.echo("No proposals")
        return

    for entry in ranking:
        delivery = f"{entry.delivery_days} dias" if entry.delivery_days is not None else "-"
        typer.echo(
            f"  {entry.rank}. {entry.proposal.supplier_name}: "
            f"{format_brl(entry.calculated_total)} (entrega: {delivery})"
        )


@demand_app.command("pending")
def demand_pending(
    demand_id: Annotated[str, typer.Option("--id", help="Demand ID")],
    db: DbOption = None,
) -> None:
    """Eligible suppliers that have not responded yet"""
    alicerce = get_app(db)

    with handle_errors():
        suppliers = alicerce.pending_suppliers(demand_id)

    typer.echo(f"Pending suppliers: {len(suppliers)}")
    for supplier in suppliers:
        typer.echo(f"  {supplier.supplier_id}: {supplier.name}")


# Supplier commands


@supplier_app.command("register")
def supplier_register(
    name: Annotated[str, typer.Option("--name", help="Supplier name")],
    email: Annotated[Optional[str], typer.Option("--email", help="Contact e-mail")] = None,
    groups: Annotated[
        str,
        typer.Option("--groups", help="Group ids or names (comma-separated)"),
    ] = "",
    cnpj: Annotated[Optional[str], typer.Option("--cnpj", help="CNPJ")] = None,
    phone: Annotated[Optional[str], typer.Option("--phone", help="Phone")] = None,
    user: UserOption = "cli",
    role: RoleOption = "PROCUREMENT",
    db: DbOption = None,
) -> None:
    """Pre-register a supplier (starts Pending)"""
    alicerce = get_app(db)

    group_list = [g.strip() for g in groups.split(",") if g.strip()]
    with handle_errors():
        supplier = alicerce.register_supplier(
            current_user(user, role),
            name=name,
            email=email,
            groups=group_list,
            cnpj=cnpj,
            phone=phone,
        )

    typer.echo(f"✓ Registered supplier: {supplier.supplier_id}")
    typer.echo(f"  Name: {supplier.name}")
    typer.echo(f"  Status: {supplier.status.value}")


@supplier_app.command("approve")
def supplier_approve(
    supplier_id: Annotated[str, typer.Option("--id", help="Supplier ID")],
    user: UserOption = "cli",
    role: RoleOption = "PROCUREMENT",
    db: DbOption = None,
) -> None:
    """Approve a pending supplier"""
    alicerce = get_app(db)

    with handle_errors():
        supplier = alicerce.approve_supplier(current_user(user, role), supplier_id)

    typer.echo(f"✓ Supplier {supplier.name} is now: {supplier.status.value}")


@supplier_app.command("reject")
def supplier_reject(
    supplier_id: Annotated[str, typer.Option("--id", help="Supplier ID")],
    reason: Annotated[str, typer.Option("--reason", help="Rejection reason")],
    user: UserOption = "cli",
    role: RoleOption = "PROCUREMENT",
    db: DbOption = None,
) -> None:
    """Reject a pending supplier"""
    alicerce = get_app(db)

    with handle_errors():
        supplier = alicerce.reject_supplier(current_user(user, role), supplier_id, reason)

    typer.echo(f"✓ Supplier {supplier.name} is now: {supplier.status.value}")


@supplier_app.command("list")
def supplier_list(
    status: Annotated[
        Optional[str],
        typer.Option("--status", help="Filter by status (PENDING, ACTIVE, REJECTED, INACTIVE)"),
    ] = None,
    json_output: JsonOption = False,
    db: DbOption = None,
) -> None:
    """List suppliers"""
    alicerce = get_app(db)

    status_filter = SupplierStatus[status.upper()] if status else None
    suppliers = alicerce.list_suppliers(status_filter)

    if json_output:
        echo_json(suppliers)
        return

    typer.echo(f"Suppliers: {len(suppliers)}")
    for supplier in suppliers:
        typer.echo(f"  {supplier.supplier_id}: {supplier.name} [{supplier.status.value}]")


@supplier_app.command("opportunities")
def supplier_opportunities(
    supplier_id: Annotated[str, typer.Option("--id", help="Supplier ID")],
    json_output: JsonOption = False,
    db: DbOption = None,
) -> None:
    """Open demands the supplier can still answer"""
    alicerce = get_app(db)

    with handle_errors():
        demands = alicerce.open_opportunities(supplier_id)

    if json_output:
        echo_json(demands)
        return

    typer.echo(f"Open opportunities: {len(demands)}")
    for demand in demands:
        typer.echo(
            f"  {demand.demand_id}: {demand.protocol} {demand.title} "
            f"(até {format_date(demand.proposal_deadline)})"
        )


# Group commands


@group_app.command("create")
def group_create(
    name: Annotated[str, typer.Option("--name", help="Group name")],
    user: UserOption = "cli",
    role: RoleOption = "PROCUREMENT",
    db: DbOption = None,
) -> None:
    """Create a supplier group"""
    alicerce = get_app(db)

    with handle_errors():
        group = alicerce.create_group(current_user(user, role), name)

    typer.echo(f"✓ Created group: {group.group_id}")
    typer.echo(f"  Name: {group.name}")


@group_app.command("list")
def group_list(
    db: DbOption = None,
) -> None:
    """List supplier groups"""
    alicerce = get_app(db)
    groups = alicerce.list_groups()

    if not groups:
        typer.echo("No groups")
        return

    typer.echo(f"Groups ({len(groups)}):")
    for group in groups:
        typer.echo(f"  {group.group_id}: {group.name}")


# Proposal commands


@proposal_app.command("submit")
def proposal_submit(
    demand_id: Annotated[str, typer.Option("--demand", help="Demand ID")],
    supplier_id: Annotated[str, typer.Option("--supplier", help="Supplier ID")],
    items: Annotated[
        str,
        typer.Option("--items", help="Priced items (JSON array of {item_id, unit_price, brand})"),
    ],
    total: Annotated[
        Optional[str],
        typer.Option("--total", help="Declared total (computed if omitted)"),
    ] = None,
    delivery: Annotated[str, typer.Option("--delivery", help="Delivery time, e.g. '10 dias'")] = "",
    observations: Annotated[str, typer.Option("--observations")] = "",
    user: UserOption = "cli",
    role: RoleOption = "SUPPLIER",
    db: DbOption = None,
) -> None:
    """Submit (or replace) a proposal"""
    alicerce = get_app(db)

    with handle_errors():
        demand = alicerce.submit_proposal(
            current_user(user, role, supplier_id),
            demand_id,
            supplier_id,
            items=json.loads(items),
            total_value=total,
            delivery_time=delivery,
            observations=observations,
        )

    typer.echo(f"✓ Proposal recorded for demand: {demand.protocol}")


@proposal_app.command("decline")
def proposal_decline(
    demand_id: Annotated[str, typer.Option("--demand", help="Demand ID")],
    supplier_id: Annotated[str, typer.Option("--supplier", help="Supplier ID")],
    reason: Annotated[Optional[str], typer.Option("--reason", help="Reason")] = None,
    user: UserOption = "cli",
    role: RoleOption = "SUPPLIER",
    db: DbOption = None,
) -> None:
    """Decline to bid on a demand"""
    alicerce = get_app(db)

    with handle_errors():
        demand = alicerce.decline_opportunity(
            current_user(user, role, supplier_id), demand_id, supplier_id, reason=reason
        )

    typer.echo(f"✓ Declined demand: {demand.protocol}")


# Question commands


@question_app.command("ask")
def question_ask(
    demand_id: Annotated[str, typer.Option("--demand", help="Demand ID")],
    supplier_id: Annotated[str, typer.Option("--supplier", help="Supplier ID")],
    text: Annotated[str, typer.Option("--text", help="Question")],
    user: UserOption = "cli",
    role: RoleOption = "SUPPLIER",
    db: DbOption = None,
) -> None:
    """Ask a question about a demand"""
    alicerce = get_app(db)

    with handle_errors():
        result = alicerce.ask_question(
            current_user(user, role, supplier_id), demand_id, supplier_id, text
        )

    question = result.demand.questions[-1]
    typer.echo(f"✓ Question registered: {question.question_id}")


@question_app.command("answer")
def question_answer(
    demand_id: Annotated[str, typer.Option("--demand", help="Demand ID")],
    question_id: Annotated[str, typer.Option("--question", help="Question ID")],
    answer: Annotated[str, typer.Option("--answer", help="Answer")],
    user: UserOption = "cli",
    role: RoleOption = "PROCUREMENT",
    db: DbOption = None,
) -> None:
    """Answer a supplier question"""
    alicerce = get_app(db)

    with handle_errors():
        result = alicerce.answer_question(current_user(user, role), demand_id, question_id, answer)

    typer.echo(f"✓ Answered question: {question_id}")
    typer.echo(f"  Notified: {result.notifications.sent} sent")


# Audit commands


@audit_app.command("list")
def audit_list(
    resource: Annotated[
        Optional[str],
        typer.Option("--resource", help="Filter by resource id"),
    ] = None,
    action: Annotated[
        Optional[str],
        typer.Option("--action", help="Filter by action (e.g. DEFINE_WINNER)"),
    ] = None,
    limit: Annotated[
        Optional[int],
        typer.Option("--limit", help="Show only the last N entries"),
    ] = None,
    json_output: JsonOption = False,
    db: DbOption = None,
) -> None:
    """Show the audit trail"""
    alicerce = get_app(db)

    entries = alicerce.audit_trail(resource_id=resource, action=action, limit=limit)

    if json_output:
        echo_json(entries)
        return

    if not entries:
        typer.echo("No audit entries")
        return

    for entry in entries:
        typer.echo(
            f"  {entry.timestamp.isoformat()} {entry.action.value} "
            f"{entry.resource_type}:{entry.resource_id} by {entry.user_name} ({entry.user_role})"
        )


if __name__ == "__main__":
    app()
