"""
Custom exceptions for Alicerce

A single hierarchy rooted at AlicerceError lets callers (CLI, HTTP adapters,
tests) tell validation failures apart from persistence and authorization
failures without string matching.

Fun fact: The word "protocol" comes from the Greek "protokollon", the first
sheet glued to a papyrus roll recording who wrote it and when. Every demand
here still carries one.
"""


class AlicerceError(Exception):
    """Base exception for all Alicerce errors"""

    pass


# ============================================================================
# Persistence
# ============================================================================


class StoreError(AlicerceError):
    """Base class for store errors"""

    pass


class RecordNotFound(StoreError):
    """Raised when a record does not exist in a collection"""

    def __init__(self, collection: str, record_id: str) -> None:
        self.collection = collection
        self.record_id = record_id
        super().__init__(f"{collection} record {record_id} not found")


class DuplicateRecord(StoreError):
    """Raised when inserting a record whose id already exists"""

    def __init__(self, collection: str, record_id: str) -> None:
        self.collection = collection
        self.record_id = record_id
        super().__init__(f"{collection} record {record_id} already exists")


class VersionConflict(StoreError):
    """
    Raised when a record version doesn't match expected (optimistic locking)

    Indicates a concurrent writer got there first - caller should reload
    the record and decide whether to retry.
    """

    def __init__(
        self, collection: str, record_id: str, expected_version: int, actual_version: int
    ) -> None:
        self.collection = collection
        self.record_id = record_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"{collection} record {record_id} version mismatch: "
            f"expected {expected_version}, got {actual_version}"
        )


class AuditLogError(StoreError):
    """Raised when the audit log cannot be written or is tampered with"""

    pass


# ============================================================================
# Lookups
# ============================================================================


class DemandNotFound(RecordNotFound):
    """Raised when demand does not exist"""

    def __init__(self, demand_id: str) -> None:
        self.demand_id = demand_id
        super().__init__("demands", demand_id)


class SupplierNotFound(RecordNotFound):
    """Raised when supplier does not exist"""

    def __init__(self, supplier_id: str) -> None:
        self.supplier_id = supplier_id
        super().__init__("suppliers", supplier_id)


class QuestionNotFound(RecordNotFound):
    """Raised when question does not exist on the demand"""

    def __init__(self, question_id: str) -> None:
        self.question_id = question_id
        super().__init__("questions", question_id)


# ============================================================================
# Validation
# ============================================================================


class ValidationFailed(AlicerceError):
    """
    Raised when an operation's input or preconditions are invalid

    Always raised before anything is persisted.
    """

    pass


class InvalidTransition(ValidationFailed):
    """Raised when the demand status graph does not allow the move"""

    def __init__(self, demand_id: str, current: str, target: str) -> None:
        self.demand_id = demand_id
        self.current = current
        self.target = target
        super().__init__(
            f"Demand {demand_id} cannot move from '{current}' to '{target}'"
        )


class PublishPreconditionFailed(ValidationFailed):
    """Raised when a demand lacks items or a proposal deadline at publication"""

    def __init__(self, demand_id: str, reasons: list[str]) -> None:
        self.demand_id = demand_id
        self.reasons = reasons
        super().__init__(
            f"Demand {demand_id} cannot be published: {'; '.join(reasons)}"
        )


class ProposalRejected(ValidationFailed):
    """Raised when a proposal cannot be accepted for the demand"""

    pass


class WinnerCoverageViolation(ValidationFailed):
    """
    Raised when a per-item homologation does not cover every item exactly once

    Carries the offending item ids so callers can show exactly what is wrong.
    """

    def __init__(
        self,
        demand_id: str,
        missing: list[str],
        unknown: list[str],
        duplicated: list[str],
    ) -> None:
        self.demand_id = demand_id
        self.missing = missing
        self.unknown = unknown
        self.duplicated = duplicated
        problems = []
        if missing:
            problems.append(f"missing items {missing}")
        if unknown:
            problems.append(f"unknown items {unknown}")
        if duplicated:
            problems.append(f"items awarded more than once {duplicated}")
        super().__init__(
            f"Winner decision for demand {demand_id} is invalid: {', '.join(problems)}"
        )


# ============================================================================
# Authorization
# ============================================================================


class NotAuthorized(AlicerceError):
    """Raised when the acting user's role does not allow the operation"""

    def __init__(self, user_id: str, role: str, action: str) -> None:
        self.user_id = user_id
        self.role = role
        self.action = action
        super().__init__(f"User {user_id} with role '{role}' may not perform {action}")
