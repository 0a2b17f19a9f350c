"""
Supplier Registry - directory lifecycle and group reference data

Pending suppliers are approved or rejected by the administration; approval
and rejection each send one e-mail to the supplier. Every change is audited.
"""

from alicerce.audit.models import AuditAction
from alicerce.audit.recorder import AuditRecorder
from alicerce.demand.invariants import authorize
from alicerce.kernel.errors import SupplierNotFound, ValidationFailed
from alicerce.kernel.identity import CurrentUser, Role
from alicerce.kernel.ids import generate_id
from alicerce.kernel.logging import get_logger
from alicerce.kernel.store import Store
from alicerce.kernel.time import TimeProvider
from alicerce.notify.dispatcher import DispatchReport, NotificationDispatcher, OutgoingMessage
from alicerce.notify.templates import TemplateId
from alicerce.supplier import commands
from alicerce.supplier.models import Group, Supplier, SupplierStatus

logger = get_logger(__name__)

SUPPLIER_TRANSITIONS: dict[SupplierStatus, frozenset[SupplierStatus]] = {
    SupplierStatus.PENDING: frozenset({SupplierStatus.ACTIVE, SupplierStatus.REJECTED}),
    SupplierStatus.REJECTED: frozenset({SupplierStatus.PENDING}),
    SupplierStatus.ACTIVE: frozenset({SupplierStatus.INACTIVE}),
    SupplierStatus.INACTIVE: frozenset({SupplierStatus.ACTIVE}),
}


def _supplier_record(supplier: Supplier) -> dict:
    data = supplier.model_dump(mode="json")
    data["id"] = supplier.supplier_id
    return data


def _group_record(group: Group) -> dict:
    return {"id": group.group_id, **group.model_dump(mode="json")}


class SupplierRegistry:
    """
    Supplier directory backed by the record store

    Args:
        store: Record store (suppliers and groups collections)
        recorder: Audit recorder
        dispatcher: Notification dispatcher for approval/rejection e-mails
        time_provider: Clock
    """

    def __init__(
        self,
        store: Store,
        recorder: AuditRecorder,
        dispatcher: NotificationDispatcher,
        time_provider: TimeProvider,
    ) -> None:
        self.store = store
        self.recorder = recorder
        self.dispatcher = dispatcher
        self.time_provider = time_provider

    # ========================================================================
    # Queries
    # ========================================================================

    def get(self, supplier_id: str) -> Supplier:
        record = self.store.get("suppliers", supplier_id)
        if record is None:
            raise SupplierNotFound(supplier_id)
        return Supplier.model_validate(record)

    def list_suppliers(self, status: SupplierStatus | None = None) -> list[Supplier]:
        filter = {"status": status.value} if status else None
        return [Supplier.model_validate(r) for r in self.store.list("suppliers", filter)]

    def find_by_name(self, name: str) -> Supplier | None:
        """Directory lookup by exact (trimmed) name"""
        wanted = name.strip()
        return next((s for s in self.list_suppliers() if s.name == wanted), None)

    def list_groups(self) -> list[Group]:
        return [Group.model_validate(r) for r in self.store.list("groups")]

    # ========================================================================
    # Supplier lifecycle
    # ========================================================================

    def register(self, command: commands.RegisterSupplier, user: CurrentUser) -> Supplier:
        """Register a supplier in Pending status"""
        authorize(user, AuditAction.REGISTER_SUPPLIER)
        if self.find_by_name(command.name) is not None:
            raise ValidationFailed(f"Supplier '{command.name.strip()}' is already registered")

        supplier = Supplier(
            supplier_id=generate_id(),
            name=command.name,
            cnpj=command.cnpj,
            email=command.email,
            phone=command.phone,
            groups=command.groups,
            documents=command.documents,
            status=SupplierStatus.PENDING,
            registered_at=self.time_provider.now(),
        )
        self.store.insert("suppliers", _supplier_record(supplier))

        logger.info("supplier_registered", supplier_id=supplier.supplier_id, name=supplier.name)
        self.recorder.record(
            user,
            AuditAction.REGISTER_SUPPLIER,
            "supplier",
            supplier.supplier_id,
            {"supplier_id": supplier.supplier_id, "name": supplier.name},
        )
        return supplier

    def _change_status(
        self,
        supplier_id: str,
        target: SupplierStatus,
        user: CurrentUser,
        reason: str | None = None,
    ) -> Supplier:
        authorize(user, AuditAction.UPDATE_SUPPLIER_STATUS)
        record = self.store.get("suppliers", supplier_id)
        if record is None:
            raise SupplierNotFound(supplier_id)
        supplier = Supplier.model_validate(record)

        if target not in SUPPLIER_TRANSITIONS[supplier.status]:
            raise ValidationFailed(
                f"Supplier {supplier_id} cannot move from '{supplier.status.value}' to '{target.value}'"
            )

        patch: dict[str, object] = {"status": target.value}
        if target == SupplierStatus.REJECTED:
            patch["rejection_reason"] = reason
        elif target == SupplierStatus.ACTIVE:
            patch["rejection_reason"] = None

        updated = self.store.update(
            "suppliers", supplier_id, patch, expected_version=record["version"]
        )
        logger.info(
            "supplier_status_changed",
            supplier_id=supplier_id,
            from_status=supplier.status.value,
            to_status=target.value,
        )
        return Supplier.model_validate(updated)

    def _notify(self, supplier: Supplier, template_id: TemplateId, **variables: str) -> DispatchReport:
        return self.dispatcher.dispatch(
            [
                OutgoingMessage(
                    recipient=supplier.name,
                    address=supplier.email,
                    template_id=template_id,
                    variables={"supplierName": supplier.name, **variables},
                )
            ]
        )

    def approve(self, supplier_id: str, user: CurrentUser) -> Supplier:
        """Approve a pending (or reactivate an inactive) supplier and notify it"""
        supplier = self._change_status(supplier_id, SupplierStatus.ACTIVE, user)
        report = self._notify(supplier, TemplateId.SUPPLIER_APPROVED)
        self.recorder.record(
            user,
            AuditAction.UPDATE_SUPPLIER_STATUS,
            "supplier",
            supplier_id,
            {"supplier_id": supplier_id, "status": supplier.status.value, "notifications": report.summary()},
        )
        return supplier

    def reject(self, supplier_id: str, reason: str, user: CurrentUser) -> Supplier:
        """Reject a pending supplier with a reason and notify it"""
        if not reason or not reason.strip():
            raise ValidationFailed("A reason is required to reject a supplier")
        supplier = self._change_status(supplier_id, SupplierStatus.REJECTED, user, reason=reason)
        report = self._notify(supplier, TemplateId.SUPPLIER_REJECTED, reason=reason)
        self.recorder.record(
            user,
            AuditAction.UPDATE_SUPPLIER_STATUS,
            "supplier",
            supplier_id,
            {
                "supplier_id": supplier_id,
                "status": supplier.status.value,
                "reason": reason,
                "notifications": report.summary(),
            },
        )
        return supplier

    def deactivate(self, supplier_id: str, user: CurrentUser) -> Supplier:
        """Stop matching an active supplier (no e-mail)"""
        supplier = self._change_status(supplier_id, SupplierStatus.INACTIVE, user)
        self.recorder.record(
            user,
            AuditAction.UPDATE_SUPPLIER_STATUS,
            "supplier",
            supplier_id,
            {"supplier_id": supplier_id, "status": supplier.status.value},
        )
        return supplier

    def resubmit(self, supplier_id: str, user: CurrentUser) -> Supplier:
        """Send a rejected supplier back to Pending after it fixed its documents"""
        supplier = self._change_status(supplier_id, SupplierStatus.PENDING, user)
        self.recorder.record(
            user,
            AuditAction.UPDATE_SUPPLIER_STATUS,
            "supplier",
            supplier_id,
            {"supplier_id": supplier_id, "status": supplier.status.value},
        )
        return supplier

    def update_groups(self, supplier_id: str, groups: list[str], user: CurrentUser) -> Supplier:
        """Replace the groups a supplier serves"""
        authorize(user, AuditAction.UPDATE_SUPPLIER_GROUPS)
        if user.role == Role.SUPPLIER and user.supplier_id != supplier_id:
            raise ValidationFailed("Suppliers may only edit their own groups")
        record = self.store.get("suppliers", supplier_id)
        if record is None:
            raise SupplierNotFound(supplier_id)

        updated = self.store.update(
            "suppliers", supplier_id, {"groups": groups}, expected_version=record["version"]
        )
        self.recorder.record(
            user,
            AuditAction.UPDATE_SUPPLIER_GROUPS,
            "supplier",
            supplier_id,
            {"supplier_id": supplier_id, "groups": groups},
        )
        return Supplier.model_validate(updated)

    # ========================================================================
    # Groups
    # ========================================================================

    def create_group(self, command: commands.CreateGroup, user: CurrentUser) -> Group:
        """Create a category; names are unique (case-insensitive)"""
        authorize(user, AuditAction.CREATE_GROUP)
        name = command.name.strip()
        if not name:
            raise ValidationFailed("Group name cannot be blank")
        if any(g.name.lower() == name.lower() for g in self.list_groups()):
            raise ValidationFailed(f"Group '{name}' already exists")

        group = Group(group_id=generate_id(), name=name)
        self.store.insert("groups", _group_record(group))
        self.recorder.record(
            user, AuditAction.CREATE_GROUP, "group", group.group_id, {"name": name}
        )
        return group
