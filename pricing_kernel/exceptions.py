"""
Typed Exception Hierarchy for the Pricing Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Margin allocation errors decide whether a job can be saved, whether a batch
repair may touch a record, and whether a quote needs a manager.  Callers must
branch on the *type* of failure, never on message wording.

Every exception:
  1. Has a TYPED class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes (not just a message string)

Example:
    try:
        breakdown = engine.allocate(quantity=q, mode=mode, size_key=size)
    except UnknownSizeError as e:
        return {"error": e.code, "size_key": e.size_key}

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    PricingKernelError (base)
    |
    +-- AllocationError
    |   +-- InvalidQuantityError
    |   +-- UnknownSizeError
    |   +-- InvalidModeError
    |
    +-- ValidationError
    |   +-- NonPositiveCustomerTotalError
    |   +-- NegativeBrokerMarginError
    |   +-- MaterialMarkupInconsistencyError
    |
    +-- ReconciliationError
    |   +-- JobNotFoundError
    |   +-- InvoiceConflictError
    |
    +-- ConfigurationError
    |
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                            | When Raised
----------------|---------------------------------|---------------------------------------
Allocation      | INVALID_QUANTITY                | quantity <= 0 or not an integer
                | UNKNOWN_SIZE                    | No rate entry and overrides incomplete
                | INVALID_MODE                    | Unrecognised mode tag / flag pair
----------------|---------------------------------|---------------------------------------
Validation      | NON_POSITIVE_CUSTOMER_TOTAL     | customer_total <= 0 at save
                | NEGATIVE_BROKER_MARGIN          | broker margin < 0 at save
                | MATERIAL_MARKUP_INCONSISTENCY   | markup != 0 in supply/waiver modes
----------------|---------------------------------|---------------------------------------
Reconciliation  | JOB_NOT_FOUND                   | Selector names an unknown job
                | INVOICE_CONFLICT                | Invoice disagrees with recomputed leg
----------------|---------------------------------|---------------------------------------
Configuration   | CONFIGURATION_ERROR             | Malformed or incomplete config set
----------------|---------------------------------|---------------------------------------
Immutability    | IMMUTABILITY_VIOLATION          | UPDATE/DELETE of a pricing audit row

Warning-level findings (NEGATIVE_INTERMEDIARY_MARGIN, CROSS_FIELD_MISMATCH) and
the APPROVAL_REQUIRED annotation are *not* exceptions -- they are returned by
the consistency validator and surfaced to the caller.
"""

from decimal import Decimal


class PricingKernelError(Exception):
    """
    Base exception for all pricing kernel errors.

    All subclasses must have a `code` class attribute
    for machine-readable error identification.
    """

    code: str = "PRICING_KERNEL_ERROR"


# Allocation exceptions


class AllocationError(PricingKernelError):
    """Base exception for allocation input errors."""

    code: str = "ALLOCATION_ERROR"


class InvalidQuantityError(AllocationError):
    """Quantity is not a positive integer."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, quantity: object):
        self.quantity = quantity
        super().__init__(f"Quantity must be a positive integer, got {quantity!r}")


class UnknownSizeError(AllocationError):
    """No rate table entry for the size and no sufficient cost overrides."""

    code: str = "UNKNOWN_SIZE"

    def __init__(self, size_key: str | None, missing: tuple[str, ...] = ()):
        self.size_key = size_key
        self.missing = missing
        detail = f" (missing overrides: {', '.join(missing)})" if missing else ""
        super().__init__(
            f"No rate table entry for size {size_key!r}{detail}. Admin input required."
        )


class InvalidModeError(AllocationError):
    """Allocation mode tag is not one of the three supported modes."""

    code: str = "INVALID_MODE"

    def __init__(self, mode: object, reason: str = "unrecognized mode"):
        self.mode = mode
        self.reason = reason
        super().__init__(f"Invalid allocation mode {mode!r}: {reason}")


# Validation exceptions (raised at save time from blocking findings)


class ValidationError(PricingKernelError):
    """Base exception for breakdowns that must not be saved."""

    code: str = "VALIDATION_ERROR"


class NonPositiveCustomerTotalError(ValidationError):
    """Customer total is zero or negative."""

    code: str = "NON_POSITIVE_CUSTOMER_TOTAL"

    def __init__(self, customer_total: Decimal):
        self.customer_total = customer_total
        super().__init__(f"Customer total must be greater than zero, got {customer_total}")


class NegativeBrokerMarginError(ValidationError):
    """Broker margin is negative -- the job must never be saved like this."""

    code: str = "NEGATIVE_BROKER_MARGIN"

    def __init__(self, broker_margin: Decimal, job_number: str | None = None):
        self.broker_margin = broker_margin
        self.job_number = job_number
        where = f" for job {job_number}" if job_number else ""
        super().__init__(f"Broker margin is negative{where}: {broker_margin}")


class MaterialMarkupInconsistencyError(ValidationError):
    """Material markup is non-zero in a mode that forces it to zero."""

    code: str = "MATERIAL_MARKUP_INCONSISTENCY"

    def __init__(self, mode: str, material_markup: Decimal):
        self.mode = mode
        self.material_markup = material_markup
        super().__init__(
            f"Material markup must be zero in mode {mode}, got {material_markup}"
        )


# Reconciliation exceptions


class ReconciliationError(PricingKernelError):
    """Base exception for reconciliation errors."""

    code: str = "RECONCILIATION_ERROR"


class JobNotFoundError(ReconciliationError):
    """Selector referenced a job number that does not exist."""

    code: str = "JOB_NOT_FOUND"

    def __init__(self, job_number: str):
        self.job_number = job_number
        super().__init__(f"Job not found: {job_number}")


class InvoiceConflictError(ReconciliationError):
    """An issued invoice disagrees with the recomputed amount for its leg."""

    code: str = "INVOICE_CONFLICT"

    def __init__(
        self,
        job_number: str,
        leg: str,
        invoiced: Decimal,
        computed: Decimal,
    ):
        self.job_number = job_number
        self.leg = leg
        self.invoiced = invoiced
        self.computed = computed
        super().__init__(
            f"Invoice for {leg} on job {job_number} is {invoiced}, "
            f"recomputed amount is {computed}"
        )


# Configuration exceptions


class ConfigurationError(PricingKernelError):
    """Configuration set is malformed or incomplete."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Invalid pricing configuration {source}: {reason}")


# Immutability exceptions


class ImmutabilityViolationError(PricingKernelError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
