from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Ledger layout, one row per enrollment attempt:
# A timestamp | B name | C mobile | D email | E city | F experience |
# G amount | H currency | I payment_id | J order_id | K status | L status_timestamp
LEDGER_COLUMNS = [
    "timestamp", "name", "mobile", "email", "city", "experience",
    "amount", "currency", "payment_id", "order_id", "status", "status_timestamp",
]
ORDER_ID_INDEX = LEDGER_COLUMNS.index("order_id")
PAYMENT_START_COLUMN = "G"
PAYMENT_END_COLUMN = "L"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def to_major_units(amount: int) -> float:
    return amount / 100


class CreateOrderRequest(BaseModel):
    amount: float = Field(..., gt=0, allow_inf_nan=False)
    currency: str = "INR"
    notes: Dict[str, Any] = Field(default_factory=dict)


class EnrollmentForm(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    name: str = ""
    mobile: str = ""
    email: str = ""
    city: str = ""
    experience: str = ""

    @field_validator("*", mode="before")
    @classmethod
    def blank_missing(cls, value):
        return "" if value is None else value


class AppendFormRequest(BaseModel):
    formData: Dict[str, Any] = Field(default_factory=dict)


class Order(BaseModel):
    """Gateway order as returned by the orders API."""

    model_config = ConfigDict(extra="allow")

    id: str
    amount: int
    currency: str = "INR"
    receipt: Optional[str] = None
    status: Optional[str] = None
    notes: Any = None


class Payment(BaseModel):
    """Gateway payment entity, as fetched or as carried in a webhook."""

    model_config = ConfigDict(extra="allow")

    id: str
    order_id: Optional[str] = None
    amount: Optional[int] = None
    currency: Optional[str] = None
    status: Optional[str] = None
    email: Optional[str] = None
    created_at: Optional[int] = None


class PaymentStatus(str, Enum):
    PENDING = "pending"
    AUTHORIZED = "authorized"
    CAPTURED = "captured"
    FAILED = "failed"
    CANCELLED = "cancelled"


class WebhookEvent(str, Enum):
    PAYMENT_CAPTURED = "payment.captured"
    PAYMENT_FAILED = "payment.failed"
    PAYMENT_PENDING = "payment.pending"
    PAYMENT_AUTHORIZED = "payment.authorized"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, name: Optional[str]) -> "WebhookEvent":
        for member in cls:
            if member is not cls.UNKNOWN and member.value == name:
                return member
        return cls.UNKNOWN

    @property
    def status(self) -> Optional[PaymentStatus]:
        """Ledger status written for this event; None for ignored events."""
        if self is WebhookEvent.UNKNOWN:
            return None
        return PaymentStatus(self.value.split(".", 1)[1])


def ledger_row(
    *,
    order_id: str,
    status: str,
    timestamp: str,
    name: str = "",
    mobile: str = "",
    email: str = "",
    city: str = "",
    experience: str = "",
    amount: Any = "",
    currency: str = "",
    payment_id: str = "",
    status_timestamp: str = "",
) -> List[Any]:
    """Build a full A-L row in column order."""
    return [
        timestamp, name, mobile, email, city, experience,
        amount, currency, payment_id, order_id, status, status_timestamp,
    ]


def payment_columns(
    *, amount: Any, currency: str, payment_id: str, order_id: str, status: str, timestamp: str
) -> List[Any]:
    """The G-L slice of a row."""
    return [amount, currency, payment_id, order_id, status, timestamp]
