"""
Domain Exceptions for the Job Cost Progress & Earned-Value engine.

Four families, each a DomainError:
- ValidationError: bad input shape or range
- IntegrityError: breakdown mismatches, duplicate codes, immutable records
- SequenceError: progress reports out of period order or workflow order
- NotFoundError: unknown job, node, line item or report reference

EVM division-by-zero cases are not errors; they surface as None values.
"""


class DomainError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, code: str = "DOMAIN_ERROR"):
        self.message = message
        self.code = code
        super().__init__(self.message)


class ValidationError(DomainError):
    """Raised when data validation fails."""

    def __init__(self, field: str, message: str, code: str = "VALIDATION_ERROR"):
        super().__init__(f"Validation failed for '{field}': {message}", code=code)
        self.field = field


class IntegrityError(DomainError):
    """Raised when a write would break a ledger integrity rule."""

    def __init__(self, message: str, code: str = "INTEGRITY_ERROR"):
        super().__init__(message, code=code)


class SequenceError(DomainError):
    """Raised when an operation arrives out of order."""

    def __init__(self, message: str, code: str = "SEQUENCE_ERROR"):
        super().__init__(message, code=code)


class NotFoundError(DomainError):
    """Raised when a referenced record does not exist."""

    def __init__(self, entity_type: str, reference, code: str = "NOT_FOUND"):
        super().__init__(f"{entity_type} '{reference}' not found", code=code)
        self.entity_type = entity_type
        self.reference = reference


# =============================================================================
# Validation Exceptions
# =============================================================================

class InvalidMarginError(ValidationError):
    """Raised when a margin percent would make the sale price undefined."""

    def __init__(self, margin_percent: float):
        super().__init__(
            "margin_percent",
            f"must be finite, >= 0 and < 100, got {margin_percent}",
            code="INVALID_MARGIN",
        )
        self.margin_percent = margin_percent


# =============================================================================
# Integrity Exceptions
# =============================================================================

class DuplicateCodeError(IntegrityError):
    """Raised when a cost structure code is already registered for a job."""

    def __init__(self, job_id: int, dimension: str, code: str):
        message = f"{dimension} code '{code}' already exists in job {job_id}"
        super().__init__(message, code="DUPLICATE_CODE")
        self.job_id = job_id
        self.dimension = dimension
        self.duplicate_code = code


class DuplicateLineNumberError(IntegrityError):
    """Raised when a SOV line number or cost code number collides within a job."""

    def __init__(self, job_id: int, field_name: str, value: str):
        message = f"SOV {field_name} '{value}' already exists in job {job_id}"
        super().__init__(message, code="DUPLICATE_LINE_NUMBER")
        self.job_id = job_id
        self.field_name = field_name
        self.value = value


class DuplicateReportNumberError(IntegrityError):
    """Raised when a progress report number is reused within a job."""

    def __init__(self, job_id: int, report_number: str):
        message = f"Progress report '{report_number}' already exists in job {job_id}"
        super().__init__(message, code="DUPLICATE_REPORT_NUMBER")
        self.job_id = job_id
        self.report_number = report_number


class BreakdownMismatchError(IntegrityError):
    """Raised when an invoice's cost code breakdown does not sum to its total."""

    def __init__(self, invoice_number: str, breakdown_cents: int, total_cents: int):
        message = (
            f"Invoice '{invoice_number}' cost code breakdown "
            f"({breakdown_cents:,} cents) must equal invoice total "
            f"({total_cents:,} cents)"
        )
        super().__init__(message, code="BREAKDOWN_MISMATCH")
        self.invoice_number = invoice_number
        self.breakdown_cents = breakdown_cents
        self.total_cents = total_cents


class NodeInUseError(IntegrityError):
    """Raised when deleting a cost structure node that is still referenced."""

    def __init__(self, node_id: int, references: int):
        message = (
            f"Cannot delete cost code node {node_id}: "
            f"{references} record(s) still reference it"
        )
        super().__init__(message, code="NODE_IN_USE")
        self.node_id = node_id
        self.references = references


class ImmutableFieldError(IntegrityError):
    """Raised when attempting to modify an immutable field."""

    def __init__(self, field_name: str, entity_type: str = "SOV line item"):
        message = (
            f"{entity_type} {field_name} cannot be modified after creation. "
            f"Add a change order line item instead."
        )
        super().__init__(message, code="IMMUTABLE_FIELD")
        self.field_name = field_name
        self.entity_type = entity_type


# =============================================================================
# Sequence Exceptions
# =============================================================================

class OutOfSequenceError(SequenceError):
    """Raised when a report would be built on an undefined baseline."""

    def __init__(self, job_id: int, reason: str):
        super().__init__(
            f"Progress report for job {job_id} is out of sequence: {reason}",
            code="OUT_OF_SEQUENCE",
        )
        self.job_id = job_id
        self.reason = reason


class InvalidTransitionError(SequenceError):
    """Raised when a report workflow transition is not allowed."""

    def __init__(self, report_id: int, current_status: str, action: str):
        super().__init__(
            f"Cannot {action} progress report {report_id} in status '{current_status}'",
            code="INVALID_TRANSITION",
        )
        self.report_id = report_id
        self.current_status = current_status
        self.action = action


class ConcurrencyError(SequenceError):
    """Raised when another writer advanced the job's report sequence first."""

    def __init__(self, entity_type: str, entity_id):
        super().__init__(
            f"Concurrent modification detected for {entity_type} '{entity_id}'. "
            f"Please refresh and try again.",
            code="CONCURRENCY_ERROR",
        )
        self.entity_type = entity_type
        self.entity_id = entity_id


# =============================================================================
# Not Found Exceptions
# =============================================================================

class JobNotFoundError(NotFoundError):
    def __init__(self, job_id):
        super().__init__("Job", job_id, code="JOB_NOT_FOUND")


class NodeNotFoundError(NotFoundError):
    def __init__(self, reference):
        super().__init__("Cost code node", reference, code="NODE_NOT_FOUND")


class GLAccountNotFoundError(NotFoundError):
    def __init__(self, reference):
        super().__init__("GL account", reference, code="GL_ACCOUNT_NOT_FOUND")


class LineItemNotFoundError(NotFoundError):
    def __init__(self, reference):
        super().__init__("SOV line item", reference, code="LINE_ITEM_NOT_FOUND")


class ReportNotFoundError(NotFoundError):
    def __init__(self, reference):
        super().__init__("Progress report", reference, code="REPORT_NOT_FOUND")
