"""
Tests for the Supplier Registry - directory lifecycle and groups
"""

from datetime import date

import pytest

from alicerce.audit.recorder import AuditRecorder
from alicerce.kernel.errors import NotAuthorized, SupplierNotFound, ValidationFailed
from alicerce.kernel.identity import CurrentUser, Role
from alicerce.notify.notifier import SimulatedNotifier
from alicerce.supplier.commands import CreateGroup, RegisterSupplier
from alicerce.supplier.models import SupplierDocument, SupplierStatus
from alicerce.supplier.registry import SupplierRegistry
from tests.helpers import add_active_supplier, create_group, make_supplier


def _register(registry: SupplierRegistry, user: CurrentUser, name: str = "Papelaria Central") -> str:
    supplier = registry.register(
        RegisterSupplier(
            name=name,
            email="contato@papelaria.example.com",
            cnpj="12.345.678/0001-90",
            groups=["Papelaria"],
        ),
        user,
    )
    return supplier.supplier_id


# ==============================================================================
# Registration and approval
# ==============================================================================


def test_register_starts_pending(registry: SupplierRegistry, admin_user: CurrentUser) -> None:
    supplier_id = _register(registry, admin_user)

    supplier = registry.get(supplier_id)
    assert supplier.status == SupplierStatus.PENDING
    assert supplier.groups == ["Papelaria"]
    assert registry.find_by_name("  Papelaria Central ") == supplier


def test_duplicate_name_rejected(registry: SupplierRegistry, admin_user: CurrentUser) -> None:
    _register(registry, admin_user)

    with pytest.raises(ValidationFailed, match="already registered"):
        _register(registry, admin_user)


def test_approve_activates_and_notifies(
    registry: SupplierRegistry,
    admin_user: CurrentUser,
    notifier: SimulatedNotifier,
    recorder: AuditRecorder,
) -> None:
    supplier_id = _register(registry, admin_user)

    supplier = registry.approve(supplier_id, admin_user)

    assert supplier.is_active
    assert notifier.subjects_for("contato@papelaria.example.com") == [
        "Cadastro Aprovado - Sistema Alicerce"
    ]
    actions = [e.action.value for e in recorder.entries(resource_id=supplier_id)]
    assert actions == ["REGISTER_SUPPLIER", "UPDATE_SUPPLIER_STATUS"]


def test_reject_requires_reason_and_notifies(
    registry: SupplierRegistry, admin_user: CurrentUser, notifier: SimulatedNotifier
) -> None:
    supplier_id = _register(registry, admin_user)

    with pytest.raises(ValidationFailed):
        registry.reject(supplier_id, "  ", admin_user)

    supplier = registry.reject(supplier_id, "Certidão vencida", admin_user)

    assert supplier.status == SupplierStatus.REJECTED
    assert supplier.rejection_reason == "Certidão vencida"
    assert "Certidão vencida" in notifier.sent[0].html_body


def test_status_graph(registry: SupplierRegistry, admin_user: CurrentUser) -> None:
    supplier_id = _register(registry, admin_user)
    registry.reject(supplier_id, "Documentação incompleta", admin_user)

    # Rejected cannot jump straight to Active
    with pytest.raises(ValidationFailed, match="cannot move"):
        registry.approve(supplier_id, admin_user)

    registry.resubmit(supplier_id, admin_user)
    assert registry.approve(supplier_id, admin_user).rejection_reason is None
    assert registry.deactivate(supplier_id, admin_user).status == SupplierStatus.INACTIVE
    assert registry.approve(supplier_id, admin_user).is_active


def test_only_staff_change_status(registry: SupplierRegistry, admin_user: CurrentUser) -> None:
    supplier_id = _register(registry, admin_user)
    supplier = CurrentUser(user_id="u-s", name="Fornecedor", role=Role.SUPPLIER, supplier_id=supplier_id)

    with pytest.raises(NotAuthorized):
        registry.approve(supplier_id, supplier)


def test_unknown_supplier(registry: SupplierRegistry, admin_user: CurrentUser) -> None:
    with pytest.raises(SupplierNotFound):
        registry.get("missing")
    with pytest.raises(SupplierNotFound):
        registry.approve("missing", admin_user)


def test_list_by_status(registry: SupplierRegistry, admin_user: CurrentUser) -> None:
    add_active_supplier(registry, "Acme", ["Papelaria"])
    _register(registry, admin_user, name="Beta")

    assert [s.name for s in registry.list_suppliers(SupplierStatus.ACTIVE)] == ["Acme"]
    assert [s.name for s in registry.list_suppliers(SupplierStatus.PENDING)] == ["Beta"]
    assert len(registry.list_suppliers()) == 2


# ==============================================================================
# Groups
# ==============================================================================


def test_supplier_edits_own_groups_only(registry: SupplierRegistry) -> None:
    acme = add_active_supplier(registry, "Acme", ["Papelaria"])
    beta = add_active_supplier(registry, "Beta", ["Limpeza"])
    acting = CurrentUser(user_id="u-acme", name="Acme", role=Role.SUPPLIER, supplier_id=acme.supplier_id)

    updated = registry.update_groups(acme.supplier_id, ["Papelaria", "Informática"], acting)

    assert updated.groups == ["Papelaria", "Informática"]
    with pytest.raises(ValidationFailed):
        registry.update_groups(beta.supplier_id, ["Papelaria"], acting)


def test_group_names_unique_case_insensitive(registry: SupplierRegistry, admin_user: CurrentUser) -> None:
    create_group(registry, "Papelaria")

    with pytest.raises(ValidationFailed, match="already exists"):
        registry.create_group(CreateGroup(name="  PAPELARIA "), admin_user)

    assert [g.name for g in registry.list_groups()] == ["Papelaria"]


# ==============================================================================
# Documents
# ==============================================================================


def test_expired_documents() -> None:
    supplier = make_supplier("s-1", ["g-1"]).model_copy(
        update={
            "documents": [
                SupplierDocument(name="CND Federal", validity_date=date(2025, 1, 10)),
                SupplierDocument(name="FGTS", validity_date=date(2025, 3, 1)),
                SupplierDocument(name="Contrato Social"),
            ]
        }
    )

    assert [d.name for d in supplier.expired_documents(date(2025, 1, 15))] == ["CND Federal"]
