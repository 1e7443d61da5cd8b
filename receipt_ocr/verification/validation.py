"""
Receipt Validation

Checks a verified receipt before it is reported:
- amount normalised to $0.00 format, between $0.00 and $999,999.99
- date in YYYY-MM-DD, between 2020-01-01 and today
- vehicle ID 1-50 chars of letters, digits, spaces and dashes
- vendor <= 100 chars, location <= 200 chars, extracted text <= 5000 chars
"""

import re
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List, Dict, Any
from dataclasses import dataclass, field

from pydantic import BaseModel, Field, ValidationError, field_validator

from receipt_ocr.verification.receipt_draft import ReceiptType, ReceiptStatus, normalize_amount

MIN_RECEIPT_DATE = date(2020, 1, 1)
MAX_AMOUNT = Decimal("999999.99")

VEHICLE_RE = re.compile(r"^[A-Z0-9\s\-]+$", re.IGNORECASE)


class ReceiptSchema(BaseModel):
    """Validated receipt, ready for the report stage."""
    date: str
    type: ReceiptType
    amount: str
    vehicle: str = Field(..., min_length=1, max_length=50)
    vendor_name: str = Field(..., max_length=100)
    location: Optional[str] = Field(default=None, max_length=200)
    extracted_text: str = Field(default="", max_length=5000)
    status: ReceiptStatus = ReceiptStatus.PENDING
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)

    @field_validator("amount")
    @classmethod
    def check_amount(cls, value: str) -> str:
        normalized = normalize_amount(value)
        if normalized is None:
            raise ValueError("Invalid amount")
        amount = Decimal(normalized[1:])
        if amount < 0 or amount > MAX_AMOUNT:
            raise ValueError("Amount must be between $0.00 and $999,999.99")
        return normalized

    @field_validator("date")
    @classmethod
    def check_date(cls, value: str) -> str:
        if not re.fullmatch(r"\d{4}-\d{2}-\d{2}", value):
            raise ValueError("Date must be YYYY-MM-DD")
        try:
            parsed = datetime.strptime(value, "%Y-%m-%d").date()
        except ValueError:
            raise ValueError("Date must be YYYY-MM-DD")
        if parsed < MIN_RECEIPT_DATE or parsed > date.today():
            raise ValueError("Date must be between 2020-01-01 and today")
        return value

    @field_validator("vehicle")
    @classmethod
    def check_vehicle(cls, value: str) -> str:
        if not VEHICLE_RE.match(value):
            raise ValueError("Vehicle ID contains invalid characters")
        return value


@dataclass
class FieldError:
    field: str
    message: str


@dataclass
class ValidationResult:
    success: bool
    data: Optional[ReceiptSchema] = None
    errors: List[FieldError] = field(default_factory=list)

    def errors_by_field(self) -> Dict[str, str]:
        return {e.field: e.message for e in self.errors}


def validate_receipt(data: Any) -> ValidationResult:
    """
    Validate receipt data (a ReceiptDraft or a plain dict).

    Returns a ValidationResult instead of raising, so the verification
    screen can show every field error at once.
    """
    if isinstance(data, BaseModel):
        data = data.model_dump()

    try:
        validated = ReceiptSchema.model_validate(data)
    except ValidationError as e:
        errors = []
        for issue in e.errors():
            message = issue["msg"]
            # pydantic prefixes errors raised from validators
            if message.startswith("Value error, "):
                message = message[len("Value error, "):]
            errors.append(FieldError(
                field=".".join(str(p) for p in issue["loc"]),
                message=message,
            ))
        return ValidationResult(success=False, errors=errors)

    return ValidationResult(success=True, data=validated)
