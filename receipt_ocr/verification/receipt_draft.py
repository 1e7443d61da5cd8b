"""
Receipt Draft Extraction

Builds an editable receipt draft from recognized OCR text so the user can
verify it. Heuristic extraction only; the user corrects fields before saving.

Extracted fields:
- date (normalised to YYYY-MM-DD when parseable)
- type (Fuel / Maintenance / Other)
- amount (largest currency amount, else the TOTAL line)
- vehicle, vendor name, location
"""

import re
import uuid
import logging
from datetime import datetime, timezone, date
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional, List

from dateutil import parser as date_parser
from pydantic import BaseModel, Field, ConfigDict

logger = logging.getLogger(__name__)

HEURISTIC_CONFIDENCE = 0.6

UNKNOWN_VEHICLE = "Unknown Vehicle"
UNKNOWN_VENDOR = "Unknown Vendor"


class ReceiptType(str, Enum):
    FUEL = "Fuel"
    MAINTENANCE = "Maintenance"
    OTHER = "Other"


class ReceiptStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"


class ReceiptDraft(BaseModel):
    """Receipt under verification."""
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    date: str = Field(..., description="Receipt date, YYYY-MM-DD")
    type: ReceiptType = Field(default=ReceiptType.OTHER)
    amount: str = Field(default="$0.00")
    vehicle: str = Field(default=UNKNOWN_VEHICLE)
    vendor_name: str = Field(default=UNKNOWN_VENDOR)
    location: Optional[str] = None
    extracted_text: str = Field(default="")
    image_uri: Optional[str] = None
    status: ReceiptStatus = Field(default=ReceiptStatus.PENDING)
    confidence: float = Field(default=HEURISTIC_CONFIDENCE, ge=0.0, le=1.0)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# ==================== PATTERNS ====================

DATE_PATTERNS = [
    # YYYY-MM-DD or YYYY/MM/DD
    re.compile(r"\b(?:19|20)\d{2}[/-](?:0?[1-9]|1[0-2])[/-](?:0?[1-9]|[12]\d|3[01])\b"),
    # MM/DD/YYYY or MM-DD-YY
    re.compile(r"\b(?:0?[1-9]|1[0-2])[/-](?:0?[1-9]|[12]\d|3[01])[/-](?:19|20)?\d{2}\b"),
    # DD/MM/YYYY
    re.compile(r"\b(?:0?[1-9]|[12]\d|3[01])[/-](?:0?[1-9]|1[0-2])[/-](?:19|20)?\d{2}\b"),
    # Jan 1, 2023
    re.compile(
        r"\b(?:Jan(?:uary)?|Feb(?:ruary)?|Mar(?:ch)?|Apr(?:il)?|May|Jun(?:e)?|Jul(?:y)?|Aug(?:ust)?"
        r"|Sep(?:tember)?|Oct(?:ober)?|Nov(?:ember)?|Dec(?:ember)?)\s+(?:0?[1-9]|[12]\d|3[01])"
        r"(?:st|nd|rd|th)?,?\s+(?:19|20)\d{2}\b",
        re.IGNORECASE,
    ),
]

CURRENCY_AMOUNT_RE = re.compile(
    r"[$€£]\s*\d+(?:,\d{3})*(?:\.\d{2})?|\d+(?:,\d{3})*(?:\.\d{2})?\s*(?:USD|EUR|GBP|AUD)\b"
)
TOTAL_AMOUNT_RE = re.compile(
    r"(?:total|amount|due|balance|payment)[^0-9\n]*?([$€£]?\s*\d+(?:,\d{3})*(?:\.\d{2})?)",
    re.IGNORECASE,
)

FUEL_KEYWORDS = [
    "fuel", "gas", "diesel", "gasoline", "petrol",
    "gallon", "litre", "liter", "pump",
    "unleaded", "premium", "octane",
    "filling station", "gas station", "service station",
]

MAINTENANCE_KEYWORDS = [
    "repair", "maintenance", "service", "parts", "labor", "labour",
    "oil change", "tire", "tyre", "brake", "filter",
    "mechanic", "garage", "auto shop", "body shop",
    "inspection", "diagnostic", "alignment", "replacement",
]

VEHICLE_PATTERNS = [
    re.compile(r"\b(?:vehicle|truck|unit|veh|fleet|equip(?:ment)?)\s*(?:id|number|no|#|code)?[:. #]*([a-z0-9-]{1,10})\b", re.IGNORECASE),
    re.compile(r"\bVIN[:. ]*([A-Z0-9]{6,17})\b", re.IGNORECASE),
    re.compile(r"\b(?:license|plate|rego|reg(?:istration)?)\s*(?:no|#|number)?[:. ]*([A-Z0-9]{5,10})\b", re.IGNORECASE),
]

MAKE_MODEL_RE = re.compile(
    r"\b(ford|chevy|chevrolet|dodge|gmc|freightliner|peterbilt|kenworth|volvo|international|mack)\s+([a-z0-9-]+)",
    re.IGNORECASE,
)

PLAIN_NUMBER_RE = re.compile(r"^-?\d+(?:\.\d+)?$")

VENDOR_KEYWORD_RE = re.compile(r"^\s*(?:vendor|merchant|payee|store)\s*[:.]\s*(.+)$", re.IGNORECASE)
NON_VENDOR_LINE_RE = re.compile(r"^(?:date|time|order|invoice|receipt|total|tax)", re.IGNORECASE)

LOCATION_PATTERNS = [
    re.compile(r"\b\d+\s+[a-z ]+?\s(?:st(?:reet)?|ave(?:nue)?|rd|road|blvd|boulevard|dr(?:ive)?|ln|lane|way|place|plaza|square)\b", re.IGNORECASE),
    re.compile(r"\b[a-z ]+,\s*[a-z]{2}\s+\d{5}(?:-\d{4})?\b", re.IGNORECASE),
    re.compile(r"(?:address|location|branch)\s*[:.]\s*(.+)", re.IGNORECASE),
]


# ==================== EXTRACTION ====================

def normalize_amount(raw: str) -> Optional[str]:
    """'$1,234.5' -> '$1234.50'; None if the value is not a number."""
    cleaned = re.sub(r"[$€£,\s]|USD|EUR|GBP|AUD", "", raw, flags=re.IGNORECASE)
    # plain decimals only: no exponents, NaN or Infinity
    if not PLAIN_NUMBER_RE.match(cleaned):
        return None
    try:
        return f"${Decimal(cleaned).quantize(Decimal('0.01'))}"
    except InvalidOperation:
        return None


def extract_date(text: str, today: Optional[date] = None) -> str:
    for pattern in DATE_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        try:
            # ISO dates parse year-first; everything else is month-first
            year_first = bool(re.match(r"\d{4}", match.group(0)))
            parsed = date_parser.parse(match.group(0), yearfirst=year_first, dayfirst=False)
            return parsed.date().isoformat()
        except (ValueError, OverflowError):
            continue

    return (today or date.today()).isoformat()


def extract_amount(text: str) -> str:
    best: Optional[Decimal] = None
    for match in CURRENCY_AMOUNT_RE.findall(text):
        normalized = normalize_amount(match)
        if normalized is None:
            continue
        value = Decimal(normalized[1:])
        if best is None or value > best:
            best = value

    if best is not None:
        return f"${best.quantize(Decimal('0.01'))}"

    total_match = TOTAL_AMOUNT_RE.search(text)
    if total_match:
        normalized = normalize_amount(total_match.group(1))
        if normalized:
            return normalized

    return "$0.00"


def determine_receipt_type(text: str) -> ReceiptType:
    lower_text = text.lower()

    if any(re.search(rf"\b{re.escape(k)}\b", lower_text) for k in FUEL_KEYWORDS):
        return ReceiptType.FUEL

    if any(re.search(rf"\b{re.escape(k)}\b", lower_text) for k in MAINTENANCE_KEYWORDS):
        return ReceiptType.MAINTENANCE

    return ReceiptType.OTHER


def extract_vehicle(text: str) -> str:
    for pattern in VEHICLE_PATTERNS:
        match = pattern.search(text)
        if match and match.group(1):
            return f"Truck {match.group(1).upper()}"

    make_model = MAKE_MODEL_RE.search(text)
    if make_model:
        return f"{make_model.group(1).capitalize()} {make_model.group(2).upper()}"

    return UNKNOWN_VEHICLE


def extract_vendor_name(text: str) -> str:
    lines: List[str] = [line.strip() for line in text.splitlines()]

    for line in lines:
        match = VENDOR_KEYWORD_RE.match(line)
        if match and match.group(1).strip():
            return match.group(1).strip()

    # The business name is usually printed first
    for line in lines:
        if len(line) > 3 and not NON_VENDOR_LINE_RE.match(line) and re.search(r"[A-Za-z]", line):
            return line

    return UNKNOWN_VENDOR


def extract_location(text: str) -> Optional[str]:
    for pattern in LOCATION_PATTERNS:
        match = pattern.search(text)
        if match:
            value = match.group(1) if pattern.groups else match.group(0)
            return value.strip()
    return None


def extract_receipt_draft(
    text: str,
    image_uri: Optional[str] = None,
    today: Optional[date] = None,
) -> ReceiptDraft:
    """
    Build a receipt draft from recognized text.

    Args:
        text: OCR text, verbatim
        image_uri: Captured image the text came from
        today: Date used when no date is found (defaults to today)

    Returns:
        ReceiptDraft with status Pending
    """
    draft = ReceiptDraft(
        date=extract_date(text, today=today),
        type=determine_receipt_type(text),
        amount=extract_amount(text),
        vehicle=extract_vehicle(text),
        vendor_name=extract_vendor_name(text),
        location=extract_location(text),
        extracted_text=text,
        image_uri=image_uri,
        confidence=HEURISTIC_CONFIDENCE,
    )

    logger.info(f"Extracted receipt draft: type={draft.type}, amount={draft.amount}")
    return draft
