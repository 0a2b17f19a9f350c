"""
Alicerce - Main façade class

This is the primary interface for running the procurement workflow. It
wires the record store, audit log, notification dispatcher, supplier
registry and lifecycle engine together and offers a keyword-argument API
on top of the command models.

Example:
    >>> from alicerce import Alicerce
    >>> app = Alicerce("alicerce.db")
    >>> demand = app.create_demand(user, title="Papel A4", department="Educação",
    ...                            items=[{"description": "Resma", "quantity": 50}])
    >>> app.publish_demand(user, demand.demand_id, proposal_deadline=deadline)
    >>> app.define_winner(user, demand.demand_id,
    ...                   {"mode": "global", "supplier_name": "Papelaria Central",
    ...                    "total_value": "1234.50"})
"""

from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any

from alicerce.audit.log import SQLiteAuditLog
from alicerce.audit.models import AuditAction, AuditEntry
from alicerce.audit.recorder import AuditRecorder
from alicerce.demand import commands
from alicerce.demand.engine import LifecycleEngine, OperationResult
from alicerce.demand.models import Demand, DemandStatus, DemandType, Priority, ProposalItem
from alicerce.demand.winner import RankedProposal
from alicerce.kernel.identity import CurrentUser
from alicerce.kernel.metrics import update_status_gauges
from alicerce.kernel.settings import EngineSettings
from alicerce.kernel.store import SQLiteStore
from alicerce.kernel.time import RealTimeProvider, TimeProvider
from alicerce.notify.dispatcher import NotificationDispatcher
from alicerce.notify.notifier import Notifier, SimulatedNotifier
from alicerce.supplier.commands import CreateGroup, RegisterSupplier
from alicerce.supplier.models import Group, Supplier, SupplierStatus
from alicerce.supplier.registry import SupplierRegistry


class Alicerce:
    """
    Alicerce main façade

    Provides a unified API for:
    - Demand lifecycle (draft, publication, review, homologation)
    - Supplier participation (proposals, declines, questions)
    - Supplier directory and groups
    - Audit trail queries
    """

    def __init__(
        self,
        sqlite_path: str | Path,
        settings: EngineSettings | None = None,
        time_provider: TimeProvider | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        """
        Initialize Alicerce

        Args:
            sqlite_path: Path to SQLite database (records and audit log)
            settings: Engine settings (uses defaults if None)
            time_provider: Time provider (uses real time if None)
            notifier: E-mail transport (simulated if None)
        """
        self.sqlite_path = Path(sqlite_path)
        self.settings = settings or EngineSettings()
        self.time_provider = time_provider or RealTimeProvider()
        self.notifier = notifier or SimulatedNotifier()

        # Initialize infrastructure
        self.store = SQLiteStore(self.sqlite_path)
        self.audit_log = SQLiteAuditLog(self.sqlite_path)
        self.recorder = AuditRecorder(self.audit_log, self.time_provider)
        self.dispatcher = NotificationDispatcher(
            self.notifier, self.settings, self.time_provider, store=self.store
        )
        self.registry = SupplierRegistry(
            self.store, self.recorder, self.dispatcher, self.time_provider
        )
        self.engine = LifecycleEngine(
            self.store,
            self.recorder,
            self.dispatcher,
            self.registry,
            self.time_provider,
            self.settings,
        )

    # ==================================================================
    # Demand lifecycle
    # ==================================================================

    def create_demand(
        self,
        user: CurrentUser,
        title: str,
        department: str,
        items: list[dict[str, Any]] | None = None,
        contact_email: str | None = None,
        proposal_deadline: datetime | None = None,
        description: str = "",
        demand_type: DemandType = DemandType.MATERIALS,
        priority: Priority = Priority.MEDIUM,
    ) -> Demand:
        """
        Create a demand in draft

        Args:
            user: Acting user
            title: Demand title
            department: Requesting department
            items: Item specs (description, quantity, unit, target_price, group_id)
            contact_email: Department contact address
            proposal_deadline: Deadline for proposals (may also be given at publication)
            description: Free text
            demand_type: Materials or services
            priority: Low, medium or urgent

        Returns:
            The created Demand
        """
        command = commands.CreateDemand(
            title=title,
            department=department,
            contact_email=contact_email,
            items=[commands.ItemSpec(**item) for item in items or []],
            proposal_deadline=proposal_deadline,
            description=description,
            demand_type=demand_type,
            priority=priority,
        )
        return self.engine.create_demand(command, user).demand

    def publish_demand(
        self,
        user: CurrentUser,
        demand_id: str,
        proposal_deadline: datetime | None = None,
    ) -> OperationResult:
        """Open a demand for proposals and notify eligible suppliers"""
        command = commands.PublishDemand(
            demand_id=demand_id, proposal_deadline=proposal_deadline
        )
        return self.engine.publish_demand(command, user)

    def warehouse_approve(
        self,
        user: CurrentUser,
        demand_id: str,
        observations: str | None = None,
        items: list[dict[str, Any]] | None = None,
        proposal_deadline: datetime | None = None,
    ) -> OperationResult:
        command = commands.WarehouseApprove(
            demand_id=demand_id,
            observations=observations,
            items=[commands.ItemSpec(**item) for item in items] if items is not None else None,
            proposal_deadline=proposal_deadline,
        )
        return self.engine.warehouse_approve(command, user)

    def move_to_review(
        self,
        user: CurrentUser,
        demand_id: str,
        target: DemandStatus = DemandStatus.UNDER_REVIEW,
        reason: str | None = None,
    ) -> Demand:
        command = commands.MoveToReview(demand_id=demand_id, target=target, reason=reason)
        return self.engine.move_to_review(command, user).demand

    def define_winner(
        self,
        user: CurrentUser,
        demand_id: str,
        decision: dict[str, Any],
    ) -> OperationResult:
        """
        Homologate the winner(s)

        Args:
            user: Acting user
            demand_id: Demand under review
            decision: {"mode": "global", "supplier_name", "total_value"} or
                {"mode": "item", "awards": [{"item_id", "supplier_name",
                "unit_price", "total_value"}, ...]}, with optional
                "justification"

        Returns:
            OperationResult with the resolution and the notification report
        """
        command = commands.DefineWinner.model_validate(
            {"demand_id": demand_id, "decision": decision}
        )
        return self.engine.define_winner(command, user)

    def reject_demand(self, user: CurrentUser, demand_id: str, reason: str) -> Demand:
        command = commands.RejectDemand(demand_id=demand_id, reason=reason)
        return self.engine.reject_demand(command, user).demand

    def cancel_demand(self, user: CurrentUser, demand_id: str, reason: str) -> Demand:
        command = commands.CancelDemand(demand_id=demand_id, reason=reason)
        return self.engine.cancel_demand(command, user).demand

    def complete_demand(
        self, user: CurrentUser, demand_id: str, observations: str | None = None
    ) -> Demand:
        command = commands.FinalizeDemand(demand_id=demand_id, observations=observations)
        return self.engine.complete_demand(command, user).demand

    def close_demand(
        self, user: CurrentUser, demand_id: str, observations: str | None = None
    ) -> Demand:
        command = commands.FinalizeDemand(demand_id=demand_id, observations=observations)
        return self.engine.close_demand(command, user).demand

    def update_items(
        self,
        user: CurrentUser,
        demand_id: str,
        items: list[dict[str, Any]],
        reason: str | None = None,
    ) -> Demand:
        command = commands.UpdateItems(
            demand_id=demand_id,
            items=[commands.ItemSpec(**item) for item in items],
            reason=reason,
        )
        return self.engine.update_items(command, user).demand

    def delete_demand(self, user: CurrentUser, demand_id: str) -> None:
        self.engine.delete_demand(demand_id, user)

    # ==================================================================
    # Supplier participation
    # ==================================================================

    def submit_proposal(
        self,
        user: CurrentUser,
        demand_id: str,
        supplier_id: str,
        items: list[dict[str, Any]],
        total_value: Decimal | str | None = None,
        delivery_time: str = "",
        observations: str = "",
    ) -> Demand:
        """
        Submit (or overwrite) a proposal

        Args:
            items: [{"item_id", "unit_price", "brand", "observations"}, ...]
            total_value: Declared total (computed from unit prices if None)
        """
        command = commands.SubmitProposal(
            demand_id=demand_id,
            supplier_id=supplier_id,
            items=[ProposalItem(**item) for item in items],
            total_value=total_value,
            delivery_time=delivery_time,
            observations=observations,
        )
        return self.engine.submit_proposal(command, user).demand

    def decline_opportunity(
        self,
        user: CurrentUser,
        demand_id: str,
        supplier_id: str,
        reason: str | None = None,
    ) -> Demand:
        command = commands.DeclineOpportunity(
            demand_id=demand_id, supplier_id=supplier_id, reason=reason
        )
        return self.engine.decline_opportunity(command, user).demand

    def ask_question(
        self, user: CurrentUser, demand_id: str, supplier_id: str, text: str
    ) -> OperationResult:
        command = commands.AskQuestion(demand_id=demand_id, supplier_id=supplier_id, text=text)
        return self.engine.ask_question(command, user)

    def answer_question(
        self, user: CurrentUser, demand_id: str, question_id: str, answer: str
    ) -> OperationResult:
        command = commands.AnswerQuestion(
            demand_id=demand_id, question_id=question_id, answer=answer
        )
        return self.engine.answer_question(command, user)

    # ==================================================================
    # Supplier directory
    # ==================================================================

    def register_supplier(
        self,
        user: CurrentUser,
        name: str,
        email: str | None = None,
        groups: list[str] | None = None,
        cnpj: str | None = None,
        phone: str | None = None,
    ) -> Supplier:
        command = RegisterSupplier(
            name=name, email=email, groups=groups or [], cnpj=cnpj, phone=phone
        )
        return self.registry.register(command, user)

    def approve_supplier(self, user: CurrentUser, supplier_id: str) -> Supplier:
        return self.registry.approve(supplier_id, user)

    def reject_supplier(self, user: CurrentUser, supplier_id: str, reason: str) -> Supplier:
        return self.registry.reject(supplier_id, reason, user)

    def create_group(self, user: CurrentUser, name: str) -> Group:
        return self.registry.create_group(CreateGroup(name=name), user)

    # ==================================================================
    # Queries
    # ==================================================================

    def get_demand(self, demand_id: str) -> Demand:
        return self.engine.get_demand(demand_id)

    def list_demands(self, status: DemandStatus | None = None) -> list[Demand]:
        return self.engine.list_demands(status)

    def ranked_proposals(self, demand_id: str) -> list[RankedProposal]:
        return self.engine.ranked_proposals(demand_id)

    def pending_suppliers(self, demand_id: str) -> list[Supplier]:
        return self.engine.pending_suppliers(demand_id)

    def open_opportunities(self, supplier_id: str) -> list[Demand]:
        return self.engine.open_opportunities(supplier_id)

    def list_suppliers(self, status: SupplierStatus | None = None) -> list[Supplier]:
        return self.registry.list_suppliers(status)

    def list_groups(self) -> list[Group]:
        return self.registry.list_groups()

    def suggest_deadline(
        self, demand_type: DemandType = DemandType.MATERIALS, priority: Priority = Priority.MEDIUM
    ) -> datetime:
        return self.engine.suggest_deadline(demand_type, priority)

    def audit_trail(
        self,
        resource_id: str | None = None,
        action: AuditAction | str | None = None,
        limit: int | None = None,
    ) -> list[AuditEntry]:
        return self.recorder.entries(resource_id=resource_id, action=action, limit=limit)

    def health(self) -> dict[str, Any]:
        """
        Operational summary: demands by status, suppliers, audit size

        Also refreshes the demands-by-status gauge.
        """
        counts = self.engine.repository.status_counts()
        update_status_gauges(counts)
        return {
            "demands_by_status": counts,
            "total_demands": sum(counts.values()),
            "suppliers": self.store.count("suppliers"),
            "active_suppliers": len(self.registry.list_suppliers(SupplierStatus.ACTIVE)),
            "audit_entries": self.audit_log.count(),
        }
