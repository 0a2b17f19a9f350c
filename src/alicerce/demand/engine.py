"""
Lifecycle Engine - drives a demand through its status graph

Every operation follows the same pipeline:

    authorize -> validate -> resolve/match -> persist (version-checked)
              -> notify -> audit

Validation happens before anything is written, so a rejected operation
leaves the demand untouched. Persistence goes through Store.update with
the demand's expected version: of two racing writers, one gets
VersionConflict. Notifications and the audit entry run after the commit and
never undo it.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field

from alicerce.audit.models import AuditAction, AuditEntry
from alicerce.audit.recorder import AuditRecorder
from alicerce.demand import commands
from alicerce.demand.deadlines import suggest_proposal_deadline
from alicerce.demand.invariants import (
    authorize,
    authorize_supplier,
    validate_accepts_proposals,
    validate_item_correction,
    validate_items_editable,
    validate_not_terminal,
    validate_proposal_items,
    validate_publishable,
    validate_reason,
    validate_transition,
)
from alicerce.demand.matching import eligible_suppliers, open_opportunities, pending_suppliers
from alicerce.demand.models import (
    DECLINED_SENTINEL,
    Demand,
    DemandStatus,
    DemandType,
    GlobalAward,
    Item,
    PerItemAward,
    Priority,
    Proposal,
    Question,
    WinnerMode,
)
from alicerce.demand.repository import (
    DemandRepository,
    demand_record,
    item_record,
    proposal_key,
    proposal_record,
    question_record,
)
from alicerce.demand.winner import RankedProposal, WinnerResolution, rank_proposals, resolve_winner
from alicerce.kernel.errors import (
    InvalidTransition,
    NotAuthorized,
    ProposalRejected,
    QuestionNotFound,
)
from alicerce.kernel.identity import CurrentUser, Role
from alicerce.kernel.ids import generate_id, generate_protocol
from alicerce.kernel.logging import LogOperation, get_logger
from alicerce.kernel.metrics import (
    demand_transitions_total,
    matched_suppliers,
    track_operation_duration,
    value_adjudicated,
)
from alicerce.kernel.settings import EngineSettings
from alicerce.kernel.store import Store
from alicerce.kernel.time import TimeProvider
from alicerce.notify.dispatcher import DispatchReport, NotificationDispatcher, OutgoingMessage
from alicerce.notify.templates import TemplateId, format_brl, format_date
from alicerce.supplier.models import Supplier
from alicerce.supplier.registry import SupplierRegistry

logger = get_logger(__name__)

WINNER_CONDITIONS = {
    WinnerMode.ITEM: "Verifique os itens adjudicados no portal.",
    WinnerMode.GLOBAL: "Processo em fase de empenho.",
}


class OperationResult(BaseModel):
    """Outcome of a successful engine operation"""

    demand: Demand
    notifications: DispatchReport = Field(default_factory=DispatchReport)
    resolution: WinnerResolution | None = None
    audit_entry_id: str | None = None


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class LifecycleEngine:
    """
    Demand lifecycle orchestration

    Args:
        store: Record store for demands, items, proposals and questions
        recorder: Audit recorder
        dispatcher: Notification dispatcher
        registry: Supplier directory (matching and recipient lookup)
        time_provider: Clock
        settings: Engine settings
    """

    def __init__(
        self,
        store: Store,
        recorder: AuditRecorder,
        dispatcher: NotificationDispatcher,
        registry: SupplierRegistry,
        time_provider: TimeProvider,
        settings: EngineSettings | None = None,
    ) -> None:
        self.store = store
        self.recorder = recorder
        self.dispatcher = dispatcher
        self.registry = registry
        self.time_provider = time_provider
        self.settings = settings or EngineSettings()
        self.repository = DemandRepository(store)

    # ========================================================================
    # Queries
    # ========================================================================

    def get_demand(self, demand_id: str) -> Demand:
        return self.repository.load(demand_id)

    def list_demands(self, status: DemandStatus | None = None) -> list[Demand]:
        return self.repository.list(status)

    def ranked_proposals(self, demand_id: str) -> list[RankedProposal]:
        """Advisory ranking of the demand's active proposals"""
        demand = self.repository.load(demand_id)
        return rank_proposals(demand.proposals, demand.items)

    def pending_suppliers(self, demand_id: str) -> list[Supplier]:
        """Eligible suppliers that have not responded yet"""
        demand = self.repository.load(demand_id)
        return pending_suppliers(
            demand.items,
            self.registry.list_suppliers(),
            self.registry.list_groups(),
            demand.proposals,
        )

    def open_opportunities(self, supplier_id: str) -> list[Demand]:
        """Open demands this supplier can still answer"""
        supplier = self.registry.get(supplier_id)
        return open_opportunities(
            supplier,
            self.repository.list(DemandStatus.OPEN_FOR_PROPOSALS),
            self.registry.list_groups(),
        )

    def suggest_deadline(self, demand_type: DemandType, priority: Priority) -> datetime:
        """Proposal deadline suggested for a demand created now"""
        return suggest_proposal_deadline(self.time_provider.now(), demand_type, priority)

    # ========================================================================
    # Creation and publication
    # ========================================================================

    @track_operation_duration("CREATE_DEMAND")
    def create_demand(self, command: commands.CreateDemand, user: CurrentUser) -> OperationResult:
        """Create a demand in draft with its items"""
        authorize(user, AuditAction.CREATE_DEMAND)
        now = self.time_provider.now()
        demand_id = generate_id()
        protocol = generate_protocol(
            now.year,
            prefix=self.settings.protocol_prefix,
            is_taken=self.repository.protocol_taken,
        )

        with LogOperation(logger, "create_demand", demand_id=demand_id, protocol=protocol):
            demand = Demand(
                demand_id=demand_id,
                protocol=protocol,
                title=command.title,
                department=command.department,
                contact_email=command.contact_email,
                description=command.description,
                demand_type=command.demand_type,
                priority=command.priority,
                status=DemandStatus.DRAFT,
                items=self._build_items(demand_id, command.items),
                proposal_deadline=command.proposal_deadline,
                created_by=user.user_id,
                created_at=now,
            )
            with self.store.transaction() as tx:
                tx.insert("demands", demand_record(demand))
                for item in demand.items:
                    tx.insert("items", item_record(item))

        created = self.repository.load(demand_id)
        entry = self.recorder.record(
            user,
            AuditAction.CREATE_DEMAND,
            "demand",
            demand_id,
            {"demand_id": demand_id, "protocol": protocol, "title": created.title},
        )
        return self._result(created, entry=entry)

    @track_operation_duration("PUBLISH_DEMAND")
    def publish_demand(self, command: commands.PublishDemand, user: CurrentUser) -> OperationResult:
        """
        Open a demand for proposals and notify every eligible supplier

        Raises:
            InvalidTransition: If the demand is not in DRAFT or WAREHOUSE_REVIEW
            PublishPreconditionFailed: If it has no items or no deadline
        """
        authorize(user, AuditAction.PUBLISH_DEMAND)
        with LogOperation(logger, "publish_demand", demand_id=command.demand_id):
            demand = self.repository.load(command.demand_id)
            validate_transition(demand, DemandStatus.OPEN_FOR_PROPOSALS)
            deadline = command.proposal_deadline or demand.proposal_deadline
            validate_publishable(demand.model_copy(update={"proposal_deadline": deadline}))

            published = self._transition(
                demand,
                DemandStatus.OPEN_FOR_PROPOSALS,
                {
                    "proposal_deadline": _iso(deadline),
                    "published_at": self.time_provider.now().isoformat(),
                },
            )

        report, eligible_count = self._announce(published)
        entry = self.recorder.record(
            user,
            AuditAction.PUBLISH_DEMAND,
            "demand",
            published.demand_id,
            {
                "demand_id": published.demand_id,
                "protocol": published.protocol,
                "new_status": published.status.value,
                "eligible_suppliers": eligible_count,
                "notifications": report.summary(),
            },
        )
        return self._result(published, report, entry=entry)

    @track_operation_duration("WAREHOUSE_APPROVAL")
    def warehouse_approve(
        self, command: commands.WarehouseApprove, user: CurrentUser
    ) -> OperationResult:
        """
        Warehouse sign-off: optionally correct items, then open for proposals

        Raises:
            InvalidTransition: If the demand is not in WAREHOUSE_REVIEW
            PublishPreconditionFailed: If the result has no items or deadline
        """
        authorize(user, AuditAction.WAREHOUSE_APPROVAL)
        with LogOperation(logger, "warehouse_approve", demand_id=command.demand_id):
            demand = self.repository.load(command.demand_id)
            if demand.status != DemandStatus.WAREHOUSE_REVIEW:
                raise InvalidTransition(
                    demand.demand_id,
                    demand.status.value,
                    DemandStatus.OPEN_FOR_PROPOSALS.value,
                )

            if command.items is not None:
                validate_item_correction(demand, (spec.item_id for spec in command.items))
                items = self._build_items(demand.demand_id, command.items, demand.items)
            else:
                items = demand.items
            deadline = command.proposal_deadline or demand.proposal_deadline
            validate_publishable(
                demand.model_copy(update={"items": items, "proposal_deadline": deadline})
            )

            patch: dict[str, Any] = {
                "proposal_deadline": _iso(deadline),
                "published_at": self.time_provider.now().isoformat(),
            }
            if command.observations:
                patch["approval_observations"] = command.observations

            with self.store.transaction() as tx:
                if command.items is not None:
                    self._apply_item_correction(tx, demand, items)
                approved = self._transition(
                    demand, DemandStatus.OPEN_FOR_PROPOSALS, patch, store=tx
                )

        report, eligible_count = self._announce(approved)
        entry = self.recorder.record(
            user,
            AuditAction.WAREHOUSE_APPROVAL,
            "demand",
            approved.demand_id,
            {
                "demand_id": approved.demand_id,
                "new_status": approved.status.value,
                "observations": command.observations,
                "items_corrected": command.items is not None,
                "eligible_suppliers": eligible_count,
                "notifications": report.summary(),
            },
        )
        return self._result(approved, report, entry=entry)

    def _announce(self, demand: Demand) -> tuple[DispatchReport, int]:
        """NEW_OPPORTUNITY to every eligible Active supplier"""
        match = eligible_suppliers(
            demand.items, self.registry.list_suppliers(), self.registry.list_groups()
        )
        matched_suppliers.observe(len(match.eligible))
        if match.excluded:
            logger.debug(
                "suppliers_excluded",
                demand_id=demand.demand_id,
                excluded=[e.supplier_name for e in match.excluded],
            )

        deadline = format_date(demand.proposal_deadline)
        messages = [
            OutgoingMessage(
                recipient=supplier.name,
                address=supplier.email,
                template_id=TemplateId.NEW_OPPORTUNITY,
                variables={
                    "supplierName": supplier.name,
                    "demandTitle": demand.title,
                    "protocol": demand.protocol,
                    "deadline": deadline,
                },
            )
            for supplier in match.eligible
        ]
        return self.dispatcher.dispatch(messages), len(match.eligible)

    # ========================================================================
    # Supplier participation
    # ========================================================================

    @track_operation_duration("SUBMIT_PROPOSAL")
    def submit_proposal(self, command: commands.SubmitProposal, user: CurrentUser) -> OperationResult:
        """
        Submit or overwrite a supplier's proposal

        Raises:
            ProposalRejected: Wrong status, inactive supplier or foreign items
        """
        authorize_supplier(user, command.supplier_id, AuditAction.SUBMIT_PROPOSAL)
        with LogOperation(
            logger,
            "submit_proposal",
            demand_id=command.demand_id,
            supplier_id=command.supplier_id,
        ):
            demand = self.repository.load(command.demand_id)
            after_review = validate_accepts_proposals(
                demand, self.settings.allow_proposals_during_review
            )
            supplier = self._active_supplier(command.supplier_id)
            validate_proposal_items(demand, command.items)

            now = self.time_provider.now()
            total = command.total_value
            if total is None:
                quantities = {item.item_id: item.quantity for item in demand.items}
                total = sum(
                    (pi.unit_price * quantities[pi.item_id] for pi in command.items),
                    Decimal("0"),
                )

            proposal = Proposal(
                proposal_id=proposal_key(demand.demand_id, supplier.supplier_id),
                demand_id=demand.demand_id,
                supplier_id=supplier.supplier_id,
                supplier_name=supplier.name,
                items=command.items,
                total_value=total,
                delivery_time=command.delivery_time,
                observations=command.observations,
                submitted_at=now,
            )
            resubmission = self._save_proposal(demand, proposal)

        late = demand.proposal_deadline is not None and now > demand.proposal_deadline
        if after_review:
            logger.warning(
                "proposal_after_review",
                demand_id=demand.demand_id,
                supplier_id=supplier.supplier_id,
                status=demand.status.value,
            )
        details: dict[str, Any] = {
            "demand_id": demand.demand_id,
            "supplier_id": supplier.supplier_id,
            "supplier_name": supplier.name,
            "total_value": str(total),
            "resubmission": resubmission,
        }
        if after_review:
            details["after_review"] = True
        if late:
            details["after_deadline"] = True
        entry = self.recorder.record(
            user, AuditAction.SUBMIT_PROPOSAL, "demand", demand.demand_id, details
        )
        return self._result(self.repository.load(demand.demand_id), entry=entry)

    @track_operation_duration("DECLINE_OPPORTUNITY")
    def decline_opportunity(
        self, command: commands.DeclineOpportunity, user: CurrentUser
    ) -> OperationResult:
        """Record that a supplier will not bid (replaces any earlier proposal)"""
        authorize_supplier(user, command.supplier_id, AuditAction.DECLINE_OPPORTUNITY)
        with LogOperation(
            logger,
            "decline_opportunity",
            demand_id=command.demand_id,
            supplier_id=command.supplier_id,
        ):
            demand = self.repository.load(command.demand_id)
            validate_accepts_proposals(demand, self.settings.allow_proposals_during_review)
            supplier = self.registry.get(command.supplier_id)

            observations = DECLINED_SENTINEL
            if command.reason:
                observations = f"{DECLINED_SENTINEL}: {command.reason}"
            proposal = Proposal(
                proposal_id=proposal_key(demand.demand_id, supplier.supplier_id),
                demand_id=demand.demand_id,
                supplier_id=supplier.supplier_id,
                supplier_name=supplier.name,
                observations=observations,
                submitted_at=self.time_provider.now(),
            )
            self._save_proposal(demand, proposal)

        entry = self.recorder.record(
            user,
            AuditAction.DECLINE_OPPORTUNITY,
            "demand",
            demand.demand_id,
            {
                "demand_id": demand.demand_id,
                "supplier_id": supplier.supplier_id,
                "reason": command.reason,
            },
        )
        return self._result(self.repository.load(demand.demand_id), entry=entry)

    def _active_supplier(self, supplier_id: str) -> Supplier:
        supplier = self.registry.get(supplier_id)
        if not supplier.is_active:
            raise ProposalRejected(
                f"Supplier {supplier_id} is {supplier.status.value} and cannot submit proposals"
            )
        return supplier

    def _save_proposal(self, demand: Demand, proposal: Proposal) -> bool:
        """Upsert the proposal and bump the demand version; True if it replaced one"""
        record = proposal_record(proposal)
        with self.store.transaction() as tx:
            existing = tx.get("proposals", proposal.proposal_id)
            if existing is None:
                tx.insert("proposals", record)
            else:
                tx.update("proposals", proposal.proposal_id, record)
            tx.update("demands", demand.demand_id, {}, expected_version=demand.version)
        return existing is not None

    @track_operation_duration("ASK_QUESTION")
    def ask_question(self, command: commands.AskQuestion, user: CurrentUser) -> OperationResult:
        """Register a supplier question and notify the demand's contact"""
        authorize_supplier(user, command.supplier_id, AuditAction.ASK_QUESTION)
        with LogOperation(logger, "ask_question", demand_id=command.demand_id):
            demand = self.repository.load(command.demand_id)
            validate_not_terminal(demand, "asking questions")
            supplier = self.registry.get(command.supplier_id)

            question = Question(
                question_id=generate_id(),
                demand_id=demand.demand_id,
                supplier_id=supplier.supplier_id,
                supplier_name=supplier.name,
                text=command.text,
                asked_at=self.time_provider.now(),
            )
            with self.store.transaction() as tx:
                tx.insert("questions", question_record(question))
                tx.update("demands", demand.demand_id, {}, expected_version=demand.version)

        report = self.dispatcher.dispatch(
            [
                OutgoingMessage(
                    recipient=demand.department,
                    address=demand.contact_email,
                    template_id=TemplateId.NEW_QUESTION,
                    variables={
                        "demandTitle": demand.title,
                        "protocol": demand.protocol,
                        "supplierName": supplier.name,
                        "questionText": question.text,
                    },
                )
            ]
        )
        entry = self.recorder.record(
            user,
            AuditAction.ASK_QUESTION,
            "demand",
            demand.demand_id,
            {
                "demand_id": demand.demand_id,
                "question_id": question.question_id,
                "supplier_id": supplier.supplier_id,
                "notifications": report.summary(),
            },
        )
        return self._result(self.repository.load(demand.demand_id), report, entry=entry)

    @track_operation_duration("ANSWER_QUESTION")
    def answer_question(self, command: commands.AnswerQuestion, user: CurrentUser) -> OperationResult:
        """Answer (or re-answer) a question and notify the supplier who asked"""
        authorize(user, AuditAction.ANSWER_QUESTION)
        with LogOperation(
            logger,
            "answer_question",
            demand_id=command.demand_id,
            question_id=command.question_id,
        ):
            demand = self.repository.load(command.demand_id)
            validate_not_terminal(demand, "answering questions")
            question = demand.question(command.question_id)
            if question is None:
                raise QuestionNotFound(command.question_id)

            with self.store.transaction() as tx:
                tx.update(
                    "questions",
                    question.question_id,
                    {
                        "answer": command.answer,
                        "answered_by": user.name,
                        "answered_at": self.time_provider.now().isoformat(),
                    },
                )
                tx.update("demands", demand.demand_id, {}, expected_version=demand.version)

        asker = self._lookup_supplier(question.supplier_id, question.supplier_name)
        report = self.dispatcher.dispatch(
            [
                OutgoingMessage(
                    recipient=question.supplier_name,
                    address=asker.email if asker else None,
                    template_id=TemplateId.QUESTION_ANSWERED,
                    variables={
                        "supplierName": question.supplier_name,
                        "demandTitle": demand.title,
                        "protocol": demand.protocol,
                        "answerText": command.answer,
                    },
                )
            ]
        )
        entry = self.recorder.record(
            user,
            AuditAction.ANSWER_QUESTION,
            "demand",
            demand.demand_id,
            {
                "demand_id": demand.demand_id,
                "question_id": question.question_id,
                "reanswer": question.is_answered,
                "notifications": report.summary(),
            },
        )
        return self._result(self.repository.load(demand.demand_id), report, entry=entry)

    # ========================================================================
    # Review and homologation
    # ========================================================================

    @track_operation_duration("UPDATE_STATUS")
    def move_to_review(self, command: commands.MoveToReview, user: CurrentUser) -> OperationResult:
        """Move a demand into UNDER_REVIEW or WAREHOUSE_REVIEW"""
        authorize(user, AuditAction.UPDATE_STATUS)
        with LogOperation(
            logger, "move_to_review", demand_id=command.demand_id, target=command.target.value
        ):
            demand = self.repository.load(command.demand_id)
            validate_transition(demand, command.target)
            patch = {"approval_observations": command.reason} if command.reason else {}
            moved = self._transition(demand, command.target, patch)

        entry = self.recorder.record(
            user,
            AuditAction.UPDATE_STATUS,
            "demand",
            moved.demand_id,
            {
                "demand_id": moved.demand_id,
                "new_status": moved.status.value,
                "reason": command.reason,
            },
        )
        return self._result(moved, entry=entry)

    @track_operation_duration("DEFINE_WINNER")
    def define_winner(self, command: commands.DefineWinner, user: CurrentUser) -> OperationResult:
        """
        Homologate the winner(s) and notify winners, losers and the department

        Calling it again on a homologated demand replaces the decision and
        re-sends every notification.

        Raises:
            InvalidTransition: If the demand is not under review or homologated
            WinnerCoverageViolation: Item awards that do not cover the items
                exactly (when coverage is enforced)
        """
        authorize(user, AuditAction.DEFINE_WINNER)
        with LogOperation(
            logger,
            "define_winner",
            demand_id=command.demand_id,
            mode=command.decision.mode,
        ):
            demand = self.repository.load(command.demand_id)
            validate_transition(demand, DemandStatus.WINNER_DEFINED)
            redefinition = demand.status == DemandStatus.WINNER_DEFINED
            now = self.time_provider.now()

            resolution = resolve_winner(
                demand.demand_id,
                command.decision,
                demand.items,
                demand.proposals,
                decided_at=now,
                decided_by=user.name,
                enforce_coverage=self.settings.enforce_winner_coverage,
            )
            if resolution.coverage_gaps:
                logger.warning(
                    "winner_coverage_gaps",
                    demand_id=demand.demand_id,
                    **resolution.coverage_gaps,
                )
            if redefinition and demand.winner is not None:
                logger.warning(
                    "winner_redefined",
                    demand_id=demand.demand_id,
                    previous_total=str(demand.winner.total_value),
                    new_total=str(resolution.total_value_adjudicated),
                )
            self._check_lowest_bid(demand, command.decision)

            homologated = self._transition(
                demand,
                DemandStatus.WINNER_DEFINED,
                {
                    "winner": resolution.record.model_dump(mode="json"),
                    "decision_date": now.isoformat(),
                },
            )

        value_adjudicated.labels(mode=resolution.record.mode.value).observe(
            float(resolution.total_value_adjudicated)
        )
        report = self._announce_winner(homologated, resolution)

        details: dict[str, Any] = {
            "demand_id": homologated.demand_id,
            "mode": resolution.record.mode.value,
            "winners": resolution.winners,
            "losers": resolution.losers,
            "total_value": str(resolution.total_value_adjudicated),
            "notifications": report.summary(),
        }
        if redefinition:
            details["redefinition"] = True
        if resolution.coverage_gaps:
            details["coverage_gaps"] = resolution.coverage_gaps
        entry = self.recorder.record(
            user, AuditAction.DEFINE_WINNER, "demand", homologated.demand_id, details
        )
        return self._result(homologated, report, resolution=resolution, entry=entry)

    def _check_lowest_bid(self, demand: Demand, decision: GlobalAward | PerItemAward) -> None:
        if not isinstance(decision, GlobalAward):
            return
        ranking = rank_proposals(demand.proposals, demand.items)
        if ranking and ranking[0].proposal.supplier_name.strip() != decision.supplier_name.strip():
            logger.info(
                "winner_not_lowest_bid",
                demand_id=demand.demand_id,
                winner=decision.supplier_name,
                lowest_bidder=ranking[0].proposal.supplier_name,
                lowest_total=str(ranking[0].calculated_total),
            )

    def _announce_winner(self, demand: Demand, resolution: WinnerResolution) -> DispatchReport:
        """Winners, losers and the requesting department, in one concurrent fan-out"""
        ids_by_name = {p.supplier_name.strip(): p.supplier_id for p in demand.proposals}
        conditions = WINNER_CONDITIONS[resolution.record.mode]
        base = {"demandTitle": demand.title, "protocol": demand.protocol}

        messages = []
        for row in resolution.rows:
            supplier = self._lookup_supplier(ids_by_name.get(row.supplier_name), row.supplier_name)
            messages.append(
                OutgoingMessage(
                    recipient=row.supplier_name,
                    address=supplier.email if supplier else None,
                    template_id=TemplateId.PROPOSAL_WINNER,
                    variables={
                        **base,
                        "supplierName": row.supplier_name,
                        "conditions": conditions,
                        "awardedValue": format_brl(row.total_value),
                    },
                )
            )
        for name in resolution.losers:
            supplier = self._lookup_supplier(ids_by_name.get(name), name)
            messages.append(
                OutgoingMessage(
                    recipient=name,
                    address=supplier.email if supplier else None,
                    template_id=TemplateId.PROPOSAL_LOSER,
                    variables={**base, "supplierName": name},
                )
            )
        messages.append(
            OutgoingMessage(
                recipient=demand.department,
                address=demand.contact_email,
                template_id=TemplateId.WINNER_DEFINED_SECRETARIA,
                variables={
                    **base,
                    "departmentName": demand.department,
                    "supplierName": ", ".join(resolution.winners),
                    "totalValue": format_brl(resolution.total_value_adjudicated),
                },
            )
        )
        return self.dispatcher.dispatch(messages)

    def _lookup_supplier(self, supplier_id: str | None, name: str) -> Supplier | None:
        """Directory entry by id when known, otherwise by name"""
        if supplier_id:
            record = self.store.get("suppliers", supplier_id)
            if record is not None:
                return Supplier.model_validate(record)
        return self.registry.find_by_name(name)

    # ========================================================================
    # Terminal transitions
    # ========================================================================

    @track_operation_duration("REJECT_DEMAND")
    def reject_demand(self, command: commands.RejectDemand, user: CurrentUser) -> OperationResult:
        authorize(user, AuditAction.REJECT_DEMAND)
        reason = validate_reason(command.reason, "reject a demand")
        with LogOperation(logger, "reject_demand", demand_id=command.demand_id):
            demand = self.repository.load(command.demand_id)
            validate_transition(demand, DemandStatus.REJECTED)
            rejected = self._transition(
                demand, DemandStatus.REJECTED, {"rejection_reason": reason}
            )

        entry = self.recorder.record(
            user,
            AuditAction.REJECT_DEMAND,
            "demand",
            rejected.demand_id,
            {"demand_id": rejected.demand_id, "new_status": rejected.status.value, "reason": reason},
        )
        return self._result(rejected, entry=entry)

    @track_operation_duration("CANCEL_DEMAND")
    def cancel_demand(self, command: commands.CancelDemand, user: CurrentUser) -> OperationResult:
        """Cancel a demand; requesting departments may only cancel their own"""
        authorize(user, AuditAction.CANCEL_DEMAND)
        reason = validate_reason(command.reason, "cancel a demand")
        with LogOperation(logger, "cancel_demand", demand_id=command.demand_id):
            demand = self.repository.load(command.demand_id)
            if user.role == Role.SECRETARIAT and demand.created_by != user.user_id:
                raise NotAuthorized(user.user_id, user.role.value, "cancel another department's demand")
            validate_transition(demand, DemandStatus.CANCELLED)
            cancelled = self._transition(
                demand, DemandStatus.CANCELLED, {"approval_observations": reason}
            )

        entry = self.recorder.record(
            user,
            AuditAction.CANCEL_DEMAND,
            "demand",
            cancelled.demand_id,
            {"demand_id": cancelled.demand_id, "new_status": cancelled.status.value, "reason": reason},
        )
        return self._result(cancelled, entry=entry)

    @track_operation_duration("COMPLETE_DEMAND")
    def complete_demand(self, command: commands.FinalizeDemand, user: CurrentUser) -> OperationResult:
        return self._finalize(command, user, DemandStatus.COMPLETED, AuditAction.COMPLETE_DEMAND)

    @track_operation_duration("CLOSE_DEMAND")
    def close_demand(self, command: commands.FinalizeDemand, user: CurrentUser) -> OperationResult:
        return self._finalize(command, user, DemandStatus.CLOSED, AuditAction.CLOSE_DEMAND)

    def _finalize(
        self,
        command: commands.FinalizeDemand,
        user: CurrentUser,
        target: DemandStatus,
        action: AuditAction,
    ) -> OperationResult:
        authorize(user, action)
        with LogOperation(logger, action.value.lower(), demand_id=command.demand_id):
            demand = self.repository.load(command.demand_id)
            validate_transition(demand, target)
            patch = {"approval_observations": command.observations} if command.observations else {}
            finalized = self._transition(demand, target, patch)

        entry = self.recorder.record(
            user,
            action,
            "demand",
            finalized.demand_id,
            {
                "demand_id": finalized.demand_id,
                "new_status": finalized.status.value,
                "observations": command.observations,
            },
        )
        return self._result(finalized, entry=entry)

    # ========================================================================
    # Administrative corrections
    # ========================================================================

    @track_operation_duration("UPDATE_ITEMS")
    def update_items(self, command: commands.UpdateItems, user: CurrentUser) -> OperationResult:
        """Correct the demand's items (draft, warehouse review, or admin)"""
        authorize(user, AuditAction.UPDATE_ITEMS)
        with LogOperation(logger, "update_items", demand_id=command.demand_id):
            demand = self.repository.load(command.demand_id)
            validate_items_editable(demand, user)
            validate_item_correction(demand, (spec.item_id for spec in command.items))
            items = self._build_items(demand.demand_id, command.items, demand.items)
            with self.store.transaction() as tx:
                self._apply_item_correction(tx, demand, items)
                tx.update("demands", demand.demand_id, {}, expected_version=demand.version)

        entry = self.recorder.record(
            user,
            AuditAction.UPDATE_ITEMS,
            "demand",
            demand.demand_id,
            {
                "demand_id": demand.demand_id,
                "previous_items": len(demand.items),
                "items": len(items),
                "kept_item_ids": [spec.item_id for spec in command.items if spec.item_id],
                "reason": command.reason,
            },
        )
        return self._result(self.repository.load(demand.demand_id), entry=entry)

    @track_operation_duration("DELETE_DEMAND")
    def delete_demand(self, demand_id: str, user: CurrentUser) -> None:
        """Delete a demand with its items, proposals and questions"""
        authorize(user, AuditAction.DELETE_DEMAND)
        with LogOperation(logger, "delete_demand", demand_id=demand_id):
            demand = self.repository.load(demand_id)
            with self.store.transaction() as tx:
                # Version check first: a concurrent change aborts the delete
                tx.update("demands", demand_id, {}, expected_version=demand.version)
                for collection, children in (
                    ("items", demand.items),
                    ("proposals", demand.proposals),
                    ("questions", demand.questions),
                ):
                    for child in children:
                        tx.delete(collection, self._child_id(child))
                tx.delete("demands", demand_id)

        self.recorder.record(
            user,
            AuditAction.DELETE_DEMAND,
            "demand",
            demand_id,
            {
                "demand_id": demand_id,
                "protocol": demand.protocol,
                "status": demand.status.value,
                "items": len(demand.items),
                "proposals": len(demand.proposals),
                "questions": len(demand.questions),
            },
        )

    @staticmethod
    def _child_id(child: Item | Proposal | Question) -> str:
        if isinstance(child, Item):
            return child.item_id
        if isinstance(child, Proposal):
            return child.proposal_id
        return child.question_id

    # ========================================================================
    # Persistence helpers
    # ========================================================================

    @staticmethod
    def _build_items(
        demand_id: str, specs: list[commands.ItemSpec], existing: list[Item] | None = None
    ) -> list[Item]:
        """Items for the given lines; an item_id is kept only if it already exists"""
        known = {item.item_id for item in existing or []}
        return [
            Item(
                item_id=spec.item_id if spec.item_id in known else generate_id(),
                demand_id=demand_id,
                **spec.model_dump(exclude={"item_id"}),
            )
            for spec in specs
        ]

    @staticmethod
    def _apply_item_correction(tx: Any, demand: Demand, items: list[Item]) -> None:
        """Update kept items in place, insert new ones, delete the ones left out"""
        current = {item.item_id for item in demand.items}
        corrected = {item.item_id for item in items}
        for item_id in current - corrected:
            tx.delete("items", item_id)
        for item in items:
            if item.item_id in current:
                tx.update("items", item.item_id, item.model_dump(mode="json"))
            else:
                tx.insert("items", item_record(item))

    def _transition(
        self,
        demand: Demand,
        target: DemandStatus,
        patch: dict[str, Any],
        store: Any = None,
    ) -> Demand:
        """
        Write the new status (plus patch) with an optimistic version check

        Raises:
            VersionConflict: If the demand changed since it was loaded
        """
        (store or self.store).update(
            "demands",
            demand.demand_id,
            {**patch, "status": target.value},
            expected_version=demand.version,
        )
        demand_transitions_total.labels(
            from_status=demand.status.value, to_status=target.value
        ).inc()
        logger.info(
            "demand_transitioned",
            demand_id=demand.demand_id,
            from_status=demand.status.value,
            to_status=target.value,
        )
        if store is not None:
            # Still inside the caller's transaction
            return DemandRepository(store).load(demand.demand_id)
        return self.repository.load(demand.demand_id)

    @staticmethod
    def _result(
        demand: Demand,
        report: DispatchReport | None = None,
        resolution: WinnerResolution | None = None,
        entry: AuditEntry | None = None,
    ) -> OperationResult:
        return OperationResult(
            demand=demand,
            notifications=report or DispatchReport(),
            resolution=resolution,
            audit_entry_id=entry.entry_id if entry is not None else None,
        )
