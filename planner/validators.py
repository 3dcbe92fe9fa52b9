"""Pure checks run before any write reaches the document store.

Every validator returns ``Right(document)`` with the normalized fields to
store, or ``Left({"error": "validation_error", "message": ...})`` carrying a
message an editor can show as-is.
"""
from decimal import Decimal
from typing import Optional

from planner.domain import PRIORITIES, TAGS, Note, Task, UserProfile, parse_amount, parse_timestamp, to_millis
from planner.functional import Either, Right, failure

FILL_ALL_FIELDS = "Please fill in all fields."
END_BEFORE_START = "End time must be after the start time."
INVALID_TIMES = "Please enter valid start and end times."
NO_FIELDS = "No valid fields to update."

TASK_FIELDS = frozenset({"text", "start", "end", "priority", "completed"})
NOTE_FIELDS = frozenset({"title", "text", "edit", "tag"})


def rejected(message: str) -> Either:
    return failure("validation_error", message)


def _blank(value) -> bool:
    return value is None or not str(value).strip()


def validate_task(data: dict) -> Either[dict, dict]:
    if _blank(data.get("text")) or not data.get("start") or not data.get("end"):
        return rejected(FILL_ALL_FIELDS)
    try:
        start = parse_timestamp(data["start"])
        end = parse_timestamp(data["end"])
        if start > end:
            return rejected(END_BEFORE_START)
    except (TypeError, ValueError):
        # TypeError: naive and aware datetimes cannot be compared
        return rejected(INVALID_TIMES)

    priority = data.get("priority") or "Low"
    if priority not in PRIORITIES:
        return rejected(f"Priority must be one of {', '.join(PRIORITIES)}.")
    completed = data.get("completed", False)
    if not isinstance(completed, bool):
        return rejected("Completed must be true or false.")

    return Right({
        "text": str(data["text"]),
        "start": start.isoformat(),
        "end": end.isoformat(),
        "priority": priority,
        "completed": completed,
    })


def validate_task_update(fields: dict, current: Optional[Task]) -> Either[dict, dict]:
    update = {k: v for k, v in fields.items() if k in TASK_FIELDS}
    if not update:
        return rejected(NO_FIELDS)
    if set(update) == {"completed"}:
        if not isinstance(update["completed"], bool):
            return rejected("Completed must be true or false.")
        return Right(update)

    merged = current.to_doc() if current is not None else {}
    merged.update(update)
    return validate_task(merged).map(lambda doc: {k: doc[k] for k in update})


def validate_note(data: dict) -> Either[dict, dict]:
    if _blank(data.get("title")) or _blank(data.get("text")) or not data.get("edit"):
        return rejected(FILL_ALL_FIELDS)
    try:
        edit = parse_timestamp(data["edit"])
    except ValueError:
        return rejected("Last edited time is not valid.")
    tag = data.get("tag") or ""
    if tag not in TAGS:
        return rejected(f"Tag must be one of {', '.join(t for t in TAGS if t)} or none.")
    return Right({
        "title": str(data["title"]),
        "text": str(data["text"]),
        "edit": to_millis(edit),
        "tag": tag,
    })


def validate_note_update(fields: dict, current: Optional[Note]) -> Either[dict, dict]:
    update = {k: v for k, v in fields.items() if k in NOTE_FIELDS}
    if not update:
        return rejected(NO_FIELDS)
    merged = current.to_doc() if current is not None else {}
    merged.update(update)
    return validate_note(merged).map(lambda doc: {k: doc[k] for k in update})


def validate_transaction(data: dict) -> Either[dict, dict]:
    if _blank(data.get("name")) or _blank(data.get("amount")) or not data.get("date"):
        return rejected(FILL_ALL_FIELDS)
    if _blank(data.get("category")):
        return rejected("Please enter a category.")
    try:
        amount = parse_amount(data["amount"])
    except ValueError:
        return rejected("Amount must be a number.")
    if amount <= 0:
        return rejected("Amount must be greater than zero.")
    try:
        date = parse_timestamp(data["date"])
    except ValueError:
        return rejected("Please enter a valid date.")
    return Right({
        "name": str(data["name"]),
        "amount": str(amount),
        "category": str(data["category"]).strip(),
        "date": date.isoformat(),
    })


def validate_weekly_budget(amount) -> Either[dict, dict]:
    if _blank(amount):
        return rejected("Please enter a budget amount.")
    try:
        value = parse_amount(amount)
    except ValueError:
        return rejected("Budget must be a number.")
    if value < Decimal("0"):
        return rejected("Budget cannot be negative.")
    return Right({"amount": str(value)})


def validate_profile_name(first_name: str, last_name: str,
                          current: Optional[UserProfile]) -> Either[dict, dict]:
    if _blank(first_name) or _blank(last_name):
        return rejected("First Name and Last Name cannot be empty!")
    if current is not None and (first_name, last_name) == (current.first_name, current.last_name):
        return rejected("New name cannot be the same as the current name!")
    return Right({"firstName": first_name, "lastName": last_name})


def validate_signup(first_name: str, last_name: str, email: str, email_confirm: str,
                    password: str, password_confirm: str) -> Either[dict, dict]:
    if any(_blank(v) for v in (first_name, last_name, email, password)):
        return rejected(FILL_ALL_FIELDS)
    if email != email_confirm:
        return rejected("Emails do not match.")
    if password != password_confirm:
        return rejected("Passwords do not match.")
    return Right({"firstName": first_name, "lastName": last_name, "email": email})
