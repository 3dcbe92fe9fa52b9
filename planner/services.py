"""Editors: turn user intent into controller and store calls.

Services never touch a controller's list; what they write shows up in the
next snapshot. Every method returns an ``Either`` whose Left carries a
message ready to show to the user.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional, Tuple

from planner import validators
from planner.auth import Session, auth_error_message
from planner.domain import Note, Task, Transaction, UserProfile, WeeklyBudget
from planner.errors import AuthError, DecodeError, StoreError
from planner.functional import Either, Right, failure
from planner.session import SessionContext
from planner.store import DocumentStore, budget_path, user_path
from planner.sync import SyncController
from planner.transforms import NEAR_THRESHOLD, BudgetSummary, CalendarEvent, budget_summary, calendar_events, filter_notes

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class TaskService:

    def __init__(self, controller: SyncController[Task]):
        self.controller = controller

    async def add_or_edit_todo(self, text: str, start, end, priority: str = "Low",
                               todo_id: Optional[str] = None) -> Either[dict, str]:
        data = {"text": text, "start": start, "end": end, "priority": priority}
        if todo_id is None:
            return await self.controller.create(data)
        return await self.controller.update(todo_id, data)

    async def toggle_complete(self, todo_id: str) -> Either[dict, str]:
        task = self.controller.get(todo_id).get_or_else(None)
        if task is None:
            return failure("not_found", "This task no longer exists.")
        return await self.controller.update(todo_id, {"completed": not task.completed})

    async def delete_todo(self, todo_id: str) -> Either[dict, str]:
        return await self.controller.delete(todo_id)

    def events(self) -> Tuple[CalendarEvent, ...]:
        return calendar_events(self.controller.items)


class NoteService:

    def __init__(self, controller: SyncController[Note], clock: Clock = datetime.now):
        self.controller = controller
        self.clock = clock

    async def add_or_edit_note(self, title: str, text: str, tag: str = "",
                               note_id: Optional[str] = None) -> Either[dict, str]:
        # the save time becomes the note's sort key
        data = {"title": title, "text": text, "edit": self.clock(), "tag": tag}
        if note_id is None:
            return await self.controller.create(data)
        return await self.controller.update(note_id, data)

    async def delete_note(self, note_id: str) -> Either[dict, str]:
        return await self.controller.delete(note_id)

    def search(self, query: str) -> Tuple[Note, ...]:
        return filter_notes(self.controller.items, query)


class BudgetService:
    """Transactions through the sync controller, the weekly budget as a single document."""

    def __init__(self, store: DocumentStore, controller: SyncController[Transaction],
                 clock: Clock = datetime.now, near_ratio: Decimal = NEAR_THRESHOLD):
        self.store = store
        self.controller = controller
        self.clock = clock
        self.near_ratio = near_ratio

    async def add_transaction(self, name: str, amount, category: str,
                              date: Optional[datetime] = None) -> Either[dict, str]:
        data = {"name": name, "amount": amount, "category": category, "date": date or self.clock()}
        return await self.controller.create(data)

    async def delete_transaction(self, transaction_id: str) -> Either[dict, str]:
        return await self.controller.delete(transaction_id)

    async def load_weekly_budget(self) -> Either[dict, WeeklyBudget]:
        uid = self.controller.user_id
        if uid is None:
            return failure("not_subscribed", "You need to be signed in to see your budget.")
        try:
            return Right(WeeklyBudget.from_doc(await self.store.get(budget_path(uid))))
        except (StoreError, DecodeError) as e:
            logger.warning("loading weekly budget failed: %s", e)
            return failure("read_failed", "Could not load your weekly budget.", detail=str(e))

    async def set_weekly_budget(self, amount) -> Either[dict, WeeklyBudget]:
        checked = validators.validate_weekly_budget(amount)
        if checked.is_left():
            return checked
        uid = self.controller.user_id
        if uid is None or not self.controller.active:
            return failure("not_subscribed", "You need to be signed in to make changes.")
        doc = checked.get_or_else(None)
        try:
            await self.store.set(budget_path(uid), doc, merge=True)
        except StoreError as e:
            logger.warning("saving weekly budget failed: %s", e)
            return failure("write_failed", "Could not save your weekly budget. Please try again.", detail=str(e))
        return Right(WeeklyBudget.from_doc(doc))

    def summary(self, weekly_budget: WeeklyBudget) -> BudgetSummary:
        return budget_summary(self.controller.items, weekly_budget, self.near_ratio)


class ProfileService:

    def __init__(self, store: DocumentStore):
        self.store = store

    async def save_user_info(self, uid: str, first_name: str, last_name: str, email: str) -> Either[dict, UserProfile]:
        profile = UserProfile(first_name=first_name, last_name=last_name, email=email)
        try:
            await self.store.set(user_path(uid), profile.to_doc())
        except StoreError as e:
            logger.error("saving profile for %s failed: %s", uid, e)
            return failure("write_failed", "Your account was created but your profile could not be saved.",
                           detail=str(e))
        logger.info("profile saved for %s", uid)
        return Right(profile)

    async def load_profile(self, uid: str) -> Either[dict, Optional[UserProfile]]:
        try:
            data = await self.store.get(user_path(uid))
            return Right(UserProfile.from_doc(uid, data) if data is not None else None)
        except (StoreError, DecodeError) as e:
            logger.warning("loading profile for %s failed: %s", uid, e)
            return failure("read_failed", "Could not load your profile.", detail=str(e))

    async def update_name(self, uid: str, first_name: str, last_name: str,
                          current: Optional[UserProfile]) -> Either[dict, str]:
        checked = validators.validate_profile_name(first_name, last_name, current)
        if checked.is_left():
            return checked
        try:
            await self.store.set(user_path(uid), checked.get_or_else(None), merge=True)
        except StoreError as e:
            logger.warning("updating name for %s failed: %s", uid, e)
            return failure("write_failed", "Failed to update name. Please try again.", detail=str(e))
        return Right("Name updated successfully!")


class AccountService:

    def __init__(self, session: SessionContext, profiles: ProfileService):
        self.session = session
        self.profiles = profiles

    async def sign_up(self, first_name: str, last_name: str, email: str, email_confirm: str,
                      password: str, password_confirm: str) -> Either[dict, Session]:
        checked = validators.validate_signup(first_name, last_name, email, email_confirm,
                                             password, password_confirm)
        if checked.is_left():
            return checked
        try:
            session = await self.session.sign_up(email, password)
        except AuthError as e:
            return failure(e.code, auth_error_message(e.code))
        saved = await self.profiles.save_user_info(session.uid, first_name, last_name, session.email or email)
        if saved.is_left():
            return saved
        return Right(session)

    async def log_in(self, email: str, password: str) -> Either[dict, Session]:
        try:
            return Right(await self.session.sign_in(email, password))
        except AuthError as e:
            logger.info("sign-in rejected: %s", e.code)
            return failure(e.code, auth_error_message(e.code))

    async def log_in_with_provider(self, provider: str, token: str) -> Either[dict, Session]:
        try:
            return Right(await self.session.sign_in_with_provider(provider, token))
        except AuthError as e:
            logger.info("federated sign-in rejected: %s", e.code)
            return failure(e.code, auth_error_message(e.code))

    async def log_out(self) -> Either[dict, None]:
        try:
            await self.session.sign_out()
        except AuthError as e:
            logger.error("logout failed: %s", e)
            return failure(e.code, "Logout failed. Please try again.")
        return Right(None)
