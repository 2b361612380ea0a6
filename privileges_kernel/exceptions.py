"""
Typed Exception Hierarchy for the Privileges Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the approval engine (the HTTP layer, batch jobs, tests) must map
failures to responses precisely.  Matching on message text is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example - WRONG way to handle errors:
    try:
        orchestrator.submit_decision(request_id, actor, decision)
    except Exception as e:
        if "not found" in str(e):
            return 404

Example - RIGHT way:
    try:
        orchestrator.submit_decision(request_id, actor, decision)
    except NotFoundError as e:
        return api_response(404, code=e.code)
    except ForbiddenError as e:
        return api_response(403, code=e.code)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from PrivilegesKernelError:

    PrivilegesKernelError (base)
    |
    +-- NotFoundError
    |   +-- RequestNotFoundError
    |
    +-- ForbiddenError
    |   +-- ApproverNotEligibleError
    |   +-- SelfApprovalError
    |   +-- NotRequestApplicantError
    |
    +-- InvalidStateError
    |   +-- RequestAlreadyResolvedError
    |   +-- RequestNotReturnedError
    |
    +-- ValidationError
    |   +-- InvalidDecisionOutcomeError
    |   +-- RejectionCommentRequiredError
    |   +-- EmptyPrivilegeRequestError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- AuditError
        +-- AuditChainBrokenError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Not found       | REQUEST_NOT_FOUND           | Request ID doesn't exist
----------------|-----------------------------|-----------------------------------------
Forbidden       | APPROVER_NOT_ELIGIBLE       | Role may not approve (e.g. EMPLOYEE)
                | SELF_APPROVAL               | Applicant deciding own request
                | NOT_REQUEST_APPLICANT       | Resubmission by someone else
----------------|-----------------------------|-----------------------------------------
Invalid state   | REQUEST_ALREADY_RESOLVED    | Decision on APPROVED/REJECTED request
                | REQUEST_NOT_RETURNED        | Resubmitting a request nobody returned
----------------|-----------------------------|-----------------------------------------
Validation      | INVALID_DECISION_OUTCOME    | Outcome not APPROVED/REJECTED/RETURNED
                | REJECTION_COMMENT_REQUIRED  | Rejection without a reason (if enabled)
                | EMPTY_PRIVILEGE_REQUEST     | Submission with no privileges
----------------|-----------------------------|-----------------------------------------
Concurrency     | OPTIMISTIC_LOCK_CONFLICT    | Concurrent decision on same request
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Modifying an append-only record
----------------|-----------------------------|-----------------------------------------
Audit           | AUDIT_CHAIN_BROKEN          | Hash chain validation failed

===============================================================================
HANDLING PATTERNS
===============================================================================

1. NOT RETRYABLE: NotFoundError, ForbiddenError, InvalidStateError and
   ValidationError describe the caller's input or stale view of the
   request.  Retrying the same decision yields the same error.

2. RETRYABLE: ConcurrencyError means another approver committed first.
   The caller may reload the request and decide again.

3. STORAGE FAILURES: SQLAlchemy errors are not wrapped.  They propagate
   after the orchestrator rolls the transaction back.

===============================================================================
"""


class PrivilegesKernelError(Exception):
    """
    Base exception for all privileges kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "PRIVILEGES_KERNEL_ERROR"


# Not-found exceptions


class NotFoundError(PrivilegesKernelError):
    """Base exception for unknown identifiers."""

    code: str = "NOT_FOUND"


class RequestNotFoundError(NotFoundError):
    """Privilege request with given ID was not found."""

    code: str = "REQUEST_NOT_FOUND"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Privilege request not found: {request_id}")


# Authorization exceptions


class ForbiddenError(PrivilegesKernelError):
    """Base exception for actors not entitled to an operation."""

    code: str = "FORBIDDEN"


class ApproverNotEligibleError(ForbiddenError):
    """Actor's role is not one of the approver roles."""

    code: str = "APPROVER_NOT_ELIGIBLE"

    def __init__(self, actor_id: str, role: str):
        self.actor_id = actor_id
        self.role = role
        super().__init__(f"Role {role} of actor {actor_id} cannot approve requests")


class SelfApprovalError(ForbiddenError):
    """Applicant attempted to decide on their own request."""

    code: str = "SELF_APPROVAL"

    def __init__(self, request_id: str, actor_id: str):
        self.request_id = request_id
        self.actor_id = actor_id
        super().__init__(
            f"Actor {actor_id} cannot decide on own request {request_id}"
        )


class NotRequestApplicantError(ForbiddenError):
    """Only the original applicant may resubmit a returned request."""

    code: str = "NOT_REQUEST_APPLICANT"

    def __init__(self, request_id: str, actor_id: str):
        self.request_id = request_id
        self.actor_id = actor_id
        super().__init__(
            f"Actor {actor_id} is not the applicant of request {request_id}"
        )


# State exceptions


class InvalidStateError(PrivilegesKernelError):
    """Base exception for operations on a request in the wrong state."""

    code: str = "INVALID_STATE"


class RequestAlreadyResolvedError(InvalidStateError):
    """Request is APPROVED or REJECTED; no further decisions are accepted."""

    code: str = "REQUEST_ALREADY_RESOLVED"

    def __init__(self, request_id: str, status: str):
        self.request_id = request_id
        self.status = status
        super().__init__(
            f"Request {request_id} is already resolved with status {status}"
        )


class RequestNotReturnedError(InvalidStateError):
    """Request was not returned for modification and cannot be resubmitted."""

    code: str = "REQUEST_NOT_RETURNED"

    def __init__(self, request_id: str, status: str):
        self.request_id = request_id
        self.status = status
        super().__init__(
            f"Request {request_id} (status {status}) was not returned for modification"
        )


# Validation exceptions


class ValidationError(PrivilegesKernelError):
    """Base exception for malformed decisions or submissions."""

    code: str = "VALIDATION_ERROR"


class InvalidDecisionOutcomeError(ValidationError):
    """Decision outcome is not APPROVED, REJECTED or RETURNED."""

    code: str = "INVALID_DECISION_OUTCOME"

    def __init__(self, outcome: object):
        self.outcome = str(outcome)
        super().__init__(
            f"Invalid decision outcome {outcome!r}: "
            "must be APPROVED, REJECTED or RETURNED"
        )


class RejectionCommentRequiredError(ValidationError):
    """A rejection was submitted without comments while comments are required."""

    code: str = "REJECTION_COMMENT_REQUIRED"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Rejection of request {request_id} requires a reason")


class EmptyPrivilegeRequestError(ValidationError):
    """A request must name at least one privilege."""

    code: str = "EMPTY_PRIVILEGE_REQUEST"

    def __init__(self, applicant_id: str):
        self.applicant_id = applicant_id
        super().__init__(
            f"Privilege request from {applicant_id} has no privileges"
        )


# Concurrency exceptions


class ConcurrencyError(PrivilegesKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Another transaction changed the request since it was loaded."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Concurrent modification detected on {entity_type} {entity_id}"
        )


# Immutability exceptions


class ImmutabilityError(PrivilegesKernelError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )


# Audit exceptions


class AuditError(PrivilegesKernelError):
    """Base exception for audit-related errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_event_id: str, expected_hash: str, actual_hash: str):
        self.audit_event_id = audit_event_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at {audit_event_id}: "
            f"expected {expected_hash}, got {actual_hash}"
        )
