"""
Typed Exception Hierarchy for the Requisition Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the requisition core (an HTTP layer, a CLI, a batch job) must
react differently to "fix your input", "someone else got there first" and
"the stock is gone".  Parsing message strings for that is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        service.issue(request_id, lines, actor)
    except InsufficientStockError as e:
        api_response(409, code=e.code, available=e.available,
                     requested=e.requested)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    RequisitionKernelError (base)
    |
    +-- ValidationError                      (client-correctable, no writes)
    |   +-- InvalidTransitionError
    |   +-- EmptyRequestError
    |   +-- InvalidQuantityError
    |   +-- QuantityExceedsOutstandingError
    |   +-- DuplicateMaterialError
    |   +-- DuplicateLineError
    |   +-- MissingReasonError
    |   +-- ReceiptQuantityMismatchError
    |   +-- ItemNotEligibleError
    |   +-- ItemLockedError
    |   +-- ApprovedBelowIssuedError
    |   +-- EmptyModificationError
    |   +-- DuplicateStockError
    |
    +-- NotFoundError
    |   +-- RequestNotFoundError
    |   +-- RequestItemNotFoundError
    |   +-- StockNotFoundError
    |
    +-- ConflictError
    |   +-- InsufficientStockError
    |   +-- NegativeStockError
    |   +-- StaleRequestError
    |
    +-- AuthorizationError
    |   +-- PermissionDeniedError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- LedgerIntegrityError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                           | When Raised
-------------|--------------------------------|-----------------------------------
Validation   | INVALID_TRANSITION             | Action not allowed in current status
             | EMPTY_REQUEST                  | No item with a positive quantity
             | INVALID_QUANTITY               | Zero/negative/unscaled quantity
             | QUANTITY_EXCEEDS_OUTSTANDING   | Issue qty > approved - issued
             | DUPLICATE_MATERIAL             | Two lines share a material
             | DUPLICATE_LINE                 | Same item twice in one batch
             | MISSING_REASON                 | Reject/modify without a reason
             | RECEIPT_QUANTITY_MISMATCH      | Receipt qty != issued - received
             | ITEM_NOT_ELIGIBLE              | Nothing issued/outstanding on item
             | ITEM_LOCKED                    | Remove/re-material an issued item
             | APPROVED_BELOW_ISSUED          | qty_approved set under qty_issued
             | EMPTY_MODIFICATION             | Modify command with no changes
             | DUPLICATE_STOCK                | Stock row already exists
-------------|--------------------------------|-----------------------------------
Not found    | REQUEST_NOT_FOUND              | Unknown request id
             | REQUEST_ITEM_NOT_FOUND         | Item not on this request
             | STOCK_NOT_FOUND                | No stock row for store/material
-------------|--------------------------------|-----------------------------------
Conflict     | INSUFFICIENT_STOCK             | On-hand below requested issue
             | NEGATIVE_STOCK                 | Adjustment would go below zero
             | STALE_REQUEST                  | Request changed since it was read
-------------|--------------------------------|-----------------------------------
Auth         | PERMISSION_DENIED              | Role lacks the action permission
-------------|--------------------------------|-----------------------------------
Immutability | IMMUTABILITY_VIOLATION         | UPDATE/DELETE of append-only row
-------------|--------------------------------|-----------------------------------
Ledger       | LEDGER_INTEGRITY               | on-hand != signed movement sum

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Validation errors are raised BEFORE any write.  The transaction owner
   still rolls back, but nothing was flushed.

2. Conflict errors may be raised after rows were locked.  The module
   service rolls back, releasing the locks.  The core never retries:
   a silent retry of a ledger write risks double-application.

3. ImmutabilityViolationError and LedgerIntegrityError indicate a bug or
   tampering, never user error.  Log and investigate.

===============================================================================
"""

from decimal import Decimal


class RequisitionKernelError(Exception):
    """
    Base exception for all requisition kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "REQUISITION_KERNEL_ERROR"


# =============================================================================
# Validation errors
# =============================================================================


class ValidationError(RequisitionKernelError):
    """Base exception for client-correctable rule violations."""

    code: str = "VALIDATION_ERROR"


class InvalidTransitionError(ValidationError):
    """The requested action is not permitted from the request's status."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, request_id: str, status: str, action: str):
        self.request_id = request_id
        self.status = status
        self.action = action
        super().__init__(
            f"Cannot {action} request {request_id} in status {status}"
        )


class EmptyRequestError(ValidationError):
    """A request must carry at least one item with a positive quantity."""

    code: str = "EMPTY_REQUEST"

    def __init__(self, request_id: str | None = None):
        self.request_id = request_id
        super().__init__(
            "Request must contain at least one item with qty_requested > 0"
        )


class InvalidQuantityError(ValidationError):
    """A quantity is zero, negative, or otherwise unusable."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, field: str, value: Decimal | None, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field} {value}: {reason}")


class QuantityExceedsOutstandingError(ValidationError):
    """Issue quantity is larger than what remains approved-but-unissued."""

    code: str = "QUANTITY_EXCEEDS_OUTSTANDING"

    def __init__(self, request_item_id: str, requested: Decimal, outstanding: Decimal):
        self.request_item_id = request_item_id
        self.requested = requested
        self.outstanding = outstanding
        super().__init__(
            f"Cannot issue {requested} on item {request_item_id}: "
            f"only {outstanding} approved quantity outstanding"
        )


class DuplicateMaterialError(ValidationError):
    """Two lines of the same request reference the same material."""

    code: str = "DUPLICATE_MATERIAL"

    def __init__(self, material_id: str, material_name: str | None = None):
        self.material_id = material_id
        self.material_name = material_name or material_id
        super().__init__(
            f"Cannot select the same material twice: {self.material_name}"
        )


class DuplicateLineError(ValidationError):
    """The same request item appears more than once in a single batch."""

    code: str = "DUPLICATE_LINE"

    def __init__(self, request_item_id: str):
        self.request_item_id = request_item_id
        super().__init__(f"Request item {request_item_id} appears more than once")


class MissingReasonError(ValidationError):
    """Reject and modify require a non-blank free-text reason."""

    code: str = "MISSING_REASON"

    def __init__(self, action: str):
        self.action = action
        super().__init__(f"A reason is required to {action} a request")


class ReceiptQuantityMismatchError(ValidationError):
    """Receipt must confirm exactly the issued-but-unreceived quantity."""

    code: str = "RECEIPT_QUANTITY_MISMATCH"

    def __init__(self, request_item_id: str, submitted: Decimal, required: Decimal):
        self.request_item_id = request_item_id
        self.submitted = submitted
        self.required = required
        super().__init__(
            f"Received quantity {submitted} for item {request_item_id} must "
            f"equal the outstanding issued quantity {required}"
        )


class ItemNotEligibleError(ValidationError):
    """The item has nothing the operation could act on."""

    code: str = "ITEM_NOT_ELIGIBLE"

    def __init__(self, request_item_id: str, reason: str):
        self.request_item_id = request_item_id
        self.reason = reason
        super().__init__(f"Item {request_item_id} is not eligible: {reason}")


class ItemLockedError(ValidationError):
    """An item with issued quantity cannot be removed or re-materialed."""

    code: str = "ITEM_LOCKED"

    def __init__(self, request_item_id: str, qty_issued: Decimal, change: str):
        self.request_item_id = request_item_id
        self.qty_issued = qty_issued
        self.change = change
        super().__init__(
            f"Cannot {change} item {request_item_id}: "
            f"{qty_issued} has already been issued"
        )


class ApprovedBelowIssuedError(ValidationError):
    """qty_approved may never drop under the quantity already issued."""

    code: str = "APPROVED_BELOW_ISSUED"

    def __init__(self, request_item_id: str, qty_approved: Decimal, qty_issued: Decimal):
        self.request_item_id = request_item_id
        self.qty_approved = qty_approved
        self.qty_issued = qty_issued
        super().__init__(
            f"qty_approved {qty_approved} for item {request_item_id} is below "
            f"the already issued {qty_issued}"
        )


class EmptyModificationError(ValidationError):
    """A modification must add, edit, or remove at least one line."""

    code: str = "EMPTY_MODIFICATION"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Modification of request {request_id} changes nothing")


class DuplicateStockError(ValidationError):
    """A stock row already exists for the store/material pair."""

    code: str = "DUPLICATE_STOCK"

    def __init__(self, store_id: str, material_id: str):
        self.store_id = store_id
        self.material_id = material_id
        super().__init__(
            f"Stock already exists for material {material_id} in store {store_id}"
        )


# =============================================================================
# Not found
# =============================================================================


class NotFoundError(RequisitionKernelError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"


class RequestNotFoundError(NotFoundError):
    """Request with given ID was not found."""

    code: str = "REQUEST_NOT_FOUND"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Request not found: {request_id}")


class RequestItemNotFoundError(NotFoundError):
    """Item does not exist or belongs to a different request."""

    code: str = "REQUEST_ITEM_NOT_FOUND"

    def __init__(self, request_id: str, request_item_id: str):
        self.request_id = request_id
        self.request_item_id = request_item_id
        super().__init__(
            f"Request item {request_item_id} not found on request {request_id}"
        )


class StockNotFoundError(NotFoundError):
    """No stock row exists for the store/material pair."""

    code: str = "STOCK_NOT_FOUND"

    def __init__(self, store_id: str, material_id: str, material_name: str | None = None):
        self.store_id = store_id
        self.material_id = material_id
        self.material_name = material_name or material_id
        super().__init__(
            f"No stock available for {self.material_name} in store {store_id}"
        )


# =============================================================================
# Conflicts
# =============================================================================


class ConflictError(RequisitionKernelError):
    """Base exception for state that changed under the caller."""

    code: str = "CONFLICT"


class InsufficientStockError(ConflictError):
    """On-hand quantity cannot cover the requested issue."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        store_id: str,
        material_id: str,
        available: Decimal,
        requested: Decimal,
        material_name: str | None = None,
    ):
        self.store_id = store_id
        self.material_id = material_id
        self.available = available
        self.requested = requested
        self.material_name = material_name or material_id
        super().__init__(
            f"Insufficient stock for {self.material_name}. "
            f"Available: {available}, Requested: {requested}"
        )


class NegativeStockError(ConflictError):
    """An adjustment would drive on-hand below zero."""

    code: str = "NEGATIVE_STOCK"

    def __init__(self, store_id: str, material_id: str, qty_on_hand: Decimal, delta: Decimal):
        self.store_id = store_id
        self.material_id = material_id
        self.qty_on_hand = qty_on_hand
        self.delta = delta
        super().__init__(
            f"Adjustment of {delta} would make stock for material {material_id} "
            f"in store {store_id} negative (on hand {qty_on_hand})"
        )


class StaleRequestError(ConflictError):
    """The request was modified by another transaction since it was read."""

    code: str = "STALE_REQUEST"

    def __init__(self, request_id: str, expected_version: int, actual_version: int):
        self.request_id = request_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Request {request_id} was modified concurrently "
            f"(expected version {expected_version}, found {actual_version})"
        )


# =============================================================================
# Authorization
# =============================================================================


class AuthorizationError(RequisitionKernelError):
    """Base exception for role/permission failures."""

    code: str = "AUTHORIZATION_ERROR"


class PermissionDeniedError(AuthorizationError):
    """The actor's role does not grant the action."""

    code: str = "PERMISSION_DENIED"

    def __init__(self, actor_id: str, role: str, action: str, reason: str = ""):
        self.actor_id = actor_id
        self.role = role
        self.action = action
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(f"Role {role} may not {action}{detail}")


# =============================================================================
# Immutability / integrity
# =============================================================================


class ImmutabilityError(RequisitionKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an append-only record.

    StockMovement and Approval rows are immutable from creation; Stock rows
    may change but are never deleted.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


class LedgerIntegrityError(RequisitionKernelError):
    """Stored on-hand quantity disagrees with the movement history."""

    code: str = "LEDGER_INTEGRITY"

    def __init__(self, mismatches: list[tuple[str, str, Decimal, Decimal]]):
        self.mismatches = mismatches
        super().__init__(
            f"{len(mismatches)} stock row(s) disagree with their movement history"
        )
