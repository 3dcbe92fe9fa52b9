from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from planner.errors import DecodeError

PRIORITIES = ("Low", "Med", "High")
TAGS = ("Tag1", "Tag2", "Tag3", "")  # "" means untagged


def parse_timestamp(value: Any) -> datetime:
    """Accept a datetime, an ISO-8601 string or epoch milliseconds."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, bool):
        raise ValueError("boolean is not a timestamp")
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, str) and value.strip():
        return datetime.fromisoformat(value.strip())
    raise ValueError(f"not a timestamp: {value!r}")


def parse_amount(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ValueError("boolean is not an amount")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, TypeError):
        raise ValueError(f"not an amount: {value!r}")
    if not amount.is_finite():
        raise ValueError(f"not an amount: {value!r}")
    return amount


def to_millis(ts: datetime) -> int:
    # naive values are local wall-clock time, as returned by datetime.now()
    return round(ts.timestamp() * 1000)


def _field(data: dict, key: str, kind: str, doc_id: Optional[str]) -> Any:
    if not isinstance(data, dict):
        raise DecodeError(kind, doc_id, "document body is not a mapping")
    if key not in data or data[key] is None:
        raise DecodeError(kind, doc_id, f"missing field {key!r}")
    return data[key]


def _text(data: dict, key: str, kind: str, doc_id: Optional[str]) -> str:
    value = _field(data, key, kind, doc_id)
    if not isinstance(value, str):
        raise DecodeError(kind, doc_id, f"field {key!r} must be a string")
    return value


def _timestamp(data: dict, key: str, kind: str, doc_id: Optional[str]) -> datetime:
    try:
        return parse_timestamp(_field(data, key, kind, doc_id))
    except ValueError as e:
        raise DecodeError(kind, doc_id, f"field {key!r}: {e}")


def _amount(data: dict, key: str, kind: str, doc_id: Optional[str]) -> Decimal:
    try:
        return parse_amount(_field(data, key, kind, doc_id))
    except ValueError as e:
        raise DecodeError(kind, doc_id, f"field {key!r}: {e}")


@dataclass(frozen=True)
class Task:
    id: str
    text: str
    start: datetime
    end: datetime
    priority: str       # Low | Med | High
    completed: bool = False

    @classmethod
    def from_doc(cls, doc_id: str, data: dict) -> "Task":
        priority = _text(data, "priority", "task", doc_id)
        if priority not in PRIORITIES:
            raise DecodeError("task", doc_id, f"unknown priority {priority!r}")
        completed = data.get("completed", False)
        if not isinstance(completed, bool):
            raise DecodeError("task", doc_id, "field 'completed' must be a boolean")
        return cls(
            id=doc_id,
            text=_text(data, "text", "task", doc_id),
            start=_timestamp(data, "start", "task", doc_id),
            end=_timestamp(data, "end", "task", doc_id),
            priority=priority,
            completed=completed,
        )

    def to_doc(self) -> dict:
        return {
            "text": self.text,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "priority": self.priority,
            "completed": self.completed,
        }


@dataclass(frozen=True)
class Note:
    id: str
    title: str
    text: str           # rich text markup
    edit: datetime      # last save
    tag: str = ""

    @classmethod
    def from_doc(cls, doc_id: str, data: dict) -> "Note":
        title = _text(data, "title", "note", doc_id)
        tag = data.get("tag") or ""
        if tag not in TAGS:
            raise DecodeError("note", doc_id, f"unknown tag {tag!r}")
        return cls(
            id=doc_id,
            title=title,
            text=_text(data, "text", "note", doc_id),
            edit=_timestamp(data, "edit", "note", doc_id),
            tag=tag,
        )

    def to_doc(self) -> dict:
        return {"title": self.title, "text": self.text, "edit": to_millis(self.edit), "tag": self.tag}


@dataclass(frozen=True)
class Transaction:
    id: str
    name: str
    amount: Decimal     # always positive, an expense
    category: str
    date: datetime

    @classmethod
    def from_doc(cls, doc_id: str, data: dict) -> "Transaction":
        amount = _amount(data, "amount", "transaction", doc_id)
        if amount <= 0:
            raise DecodeError("transaction", doc_id, "amount must be positive")
        category = _text(data, "category", "transaction", doc_id)
        if not category.strip():
            raise DecodeError("transaction", doc_id, "category is empty")
        return cls(
            id=doc_id,
            name=_text(data, "name", "transaction", doc_id),
            amount=amount,
            category=category,
            date=_timestamp(data, "date", "transaction", doc_id),
        )

    def to_doc(self) -> dict:
        return {
            "name": self.name,
            "amount": str(self.amount),
            "category": self.category,
            "date": self.date.isoformat(),
        }


@dataclass(frozen=True)
class WeeklyBudget:
    amount: Decimal = Decimal("0")

    @classmethod
    def from_doc(cls, data: Optional[dict]) -> "WeeklyBudget":
        if data is None:
            return cls()
        amount = _amount(data, "amount", "weeklyBudget", "currentBudget")
        if amount < 0:
            raise DecodeError("weeklyBudget", "currentBudget", "amount must not be negative")
        return cls(amount=amount)

    def to_doc(self) -> dict:
        return {"amount": str(self.amount)}


@dataclass(frozen=True)
class UserProfile:
    first_name: str
    last_name: str
    email: str

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @classmethod
    def from_doc(cls, doc_id: str, data: dict) -> "UserProfile":
        return cls(
            first_name=_text(data, "firstName", "user", doc_id),
            last_name=_text(data, "lastName", "user", doc_id),
            email=data.get("email") or "",
        )

    def to_doc(self) -> dict:
        return {"firstName": self.first_name, "lastName": self.last_name, "email": self.email}
