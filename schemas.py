from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from pydantic.alias_generators import to_camel


def parse_timestamp(value: Any) -> Any:
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            raise ValueError("must be a non-empty ISO date or datetime")
        return datetime.fromisoformat(raw)
    return value


def as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def isoformat_utc(value: datetime) -> str:
    return as_naive_utc(value).isoformat(timespec="milliseconds") + "Z"


# whole cents only; bounded so the cent value fits a 64-bit integer column
AMOUNT_LIMIT = 10**12


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TransactionIn(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )

    amount: Decimal = Field(
        ..., allow_inf_nan=False, decimal_places=2, ge=-AMOUNT_LIMIT, le=AMOUNT_LIMIT
    )
    date: datetime
    account_id: Optional[str] = Field(default=None, max_length=64)
    description: Optional[str] = None
    category: Optional[str] = None
    merchant: Optional[str] = Field(default=None, max_length=200)
    status: Optional[str] = Field(default=None, max_length=40)

    @field_validator("amount", mode="before")
    @classmethod
    def _reject_non_numbers(cls, value: Any) -> Any:
        if value is None or isinstance(value, bool):
            raise ValueError("amount must be a number")
        return value

    @field_validator("date", mode="before")
    @classmethod
    def _parse_date(cls, value: Any) -> Any:
        return parse_timestamp(value)

    @field_validator("date")
    @classmethod
    def _normalize_date(cls, value: datetime) -> datetime:
        return as_naive_utc(value)


class TransactionRecord(CamelModel):
    id: str
    account_id: str
    amount: float
    description: str = ""
    category: str = "Other"
    date: datetime
    merchant: str = ""
    status: str = "completed"
    created_at: Optional[datetime] = None

    @field_validator("date", "created_at", mode="before")
    @classmethod
    def _parse_timestamps(cls, value: Any) -> Any:
        return parse_timestamp(value)

    @field_validator("date", "created_at")
    @classmethod
    def _normalize_timestamps(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_naive_utc(value) if value is not None else None

    @field_serializer("date", "created_at")
    def _serialize_timestamps(self, value: Optional[datetime]) -> Optional[str]:
        return isoformat_utc(value) if value is not None else None


class UserRecord(CamelModel):
    id: str
    name: str
    email: Optional[str] = None
    level: int = 1
    xp: int = 0
    university: Optional[str] = None
    major: Optional[str] = None
    student_id: Optional[str] = None
    graduation_year: Optional[int] = None


class AccountRecord(CamelModel):
    id: str
    name: Optional[str] = None
    type: Optional[str] = None
    institution: Optional[str] = None
    balance: float = 0.0


class BudgetRecord(CamelModel):
    id: str
    name: str
    category: Optional[str] = None
    limit: float = 0.0
    spent: float = 0.0
    color: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class GoalRecord(CamelModel):
    id: str
    name: str
    description: Optional[str] = None
    target_amount: float = 0.0
    current_amount: float = 0.0
    target_date: Optional[date] = None
    priority: Optional[str] = None
    is_completed: bool = False


class AlertRecord(CamelModel):
    id: str
    type: str
    title: str
    message: str = ""
    severity: str = "info"
    timestamp: datetime
    is_read: bool = False

    @field_validator("timestamp", mode="before")
    @classmethod
    def _parse_timestamp(cls, value: Any) -> Any:
        return parse_timestamp(value)

    @field_validator("timestamp")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        return as_naive_utc(value)

    @field_serializer("timestamp")
    def _serialize_timestamp(self, value: datetime) -> str:
        return isoformat_utc(value)


class InsightRecord(CamelModel):
    id: str
    type: str
    category: Optional[str] = None
    title: str
    description: str = ""
    impact: Optional[str] = None
    potential_savings: float = 0.0


class MonthlyStatsRecord(CamelModel):
    month: str = Field(..., pattern=r"^\d{4}-\d{2}$")
    income: float = 0.0
    expenses: float = 0.0
    savings: Optional[float] = None
    categories: dict[str, float] = Field(default_factory=dict)
