"""
Input schemas for records supplied by collaborators.

Shape and simple range checks live here; pydantic errors are translated to
the domain ValidationError at the ingestion boundary by parse_input().
Business rules that need their own error type (margin, breakdown sums,
sequencing) are enforced by the domain services.
"""
from datetime import date
from typing import Annotated, List, Optional, Type, TypeVar, Union

from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from jobcost.domain.exceptions import ValidationError

M = TypeVar('M', bound=BaseModel)


def normalize_code(value: Optional[str]) -> Optional[str]:
    """Codes are trimmed and upper-cased; blank means absent."""
    if value is None:
        return None
    value = str(value).strip().upper()
    return value or None


Code = Annotated[str, AfterValidator(normalize_code)]
OptionalCode = Annotated[Optional[str], AfterValidator(normalize_code)]


def parse_input(model_cls: Type[M], data: Union[M, dict]) -> M:
    """Validate a payload, raising the domain ValidationError on bad input."""
    if isinstance(data, model_cls):
        return data
    try:
        return model_cls.model_validate(data)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = '.'.join(str(part) for part in first.get('loc', ())) or model_cls.__name__
        raise ValidationError(field, first.get('msg', 'invalid value'))


# =============================================================================
# Jobs
# =============================================================================

class JobCreate(BaseModel):
    """Job record as supplied by the job management collaborator."""
    code: Code = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=200)
    contract_value_cents: int = Field(0, ge=0, description="Baseline contract value in cents")
    status: str = Field("active", max_length=20)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    margin_convention: Optional[str] = Field(None, pattern="^(price|cost)$")


# =============================================================================
# Schedule of Values
# =============================================================================

class SOVLineItemCreate(BaseModel):
    """
    Request model for appending a SOV line item.

    Dimension and GL references are given by code and resolved against the
    job's cost structure registry.
    """
    line_number: Code = Field(..., min_length=1, max_length=50)
    cost_code_number: OptionalCode = Field(None, max_length=50, description="Auto-assigned when omitted")
    cost_code: OptionalCode = Field(None, max_length=100, description="Defaults to System + Area codes")
    description: str = Field("", max_length=500)
    quantity: float = Field(..., ge=0, allow_inf_nan=False)
    unit: Code = Field("LS", max_length=10)
    unit_cost_cents: Optional[float] = Field(None, allow_inf_nan=False, description="Per-unit cost in cents")
    total_cost_cents: Optional[int] = Field(None, description="Used when no unit cost is given")
    margin_percent: float = Field(0.0, description="Margin percent under the job's convention")

    system_code: OptionalCode = None
    area_code: OptionalCode = None
    phase_code: OptionalCode = None
    module_code: OptionalCode = None
    component_code: OptionalCode = None
    gl_category_code: OptionalCode = None
    gl_account_code: OptionalCode = None

    is_change_order: bool = False
    notes: Optional[str] = None


# =============================================================================
# Actual Costs
# =============================================================================

class BreakdownLine(BaseModel):
    cost_code: Code = Field(..., min_length=1, max_length=100)
    amount_cents: int = Field(..., ge=0, description="Tax-inclusive amount in cents")
    description: Optional[str] = Field(None, max_length=500)


class InvoiceCreate(BaseModel):
    """Vendor invoice with its cost code breakdown."""
    invoice_number: str = Field(..., min_length=1, max_length=100)
    vendor: str = Field("", max_length=200)
    invoice_date: date
    total_amount_cents: int = Field(..., ge=0, description="Tax-inclusive total in cents")
    invoice_type: str = Field("material", pattern="^(material|subcontractor|equipment|other|overhead)$")
    payment_status: str = Field("pending", pattern="^(pending|approved|paid|disputed|cancelled)$")
    breakdown: List[BreakdownLine] = Field(..., min_length=1)
    notes: Optional[str] = None


class LaborEntryCreate(BaseModel):
    """Labor time entry; rates in cents per hour."""
    model_config = ConfigDict(str_strip_whitespace=True, allow_inf_nan=False)

    cost_code: Code = Field(..., min_length=1, max_length=100)
    work_date: date
    worker_name: Optional[str] = Field(None, max_length=200)
    regular_hours: float = Field(0.0, ge=0)
    overtime_hours: float = Field(0.0, ge=0)
    double_time_hours: float = Field(0.0, ge=0)
    base_hourly_rate_cents: int = Field(..., ge=0)
    overtime_rate_cents: int = Field(0, ge=0)
    double_time_rate_cents: int = Field(0, ge=0)
    burden_rate: float = Field(0.35, ge=0, le=1, description="0.35 = 35% burden")
    status: str = Field("approved", pattern="^(draft|submitted|approved|rejected|paid)$")
