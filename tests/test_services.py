from datetime import datetime, timezone
from decimal import Decimal

import pytest

from planner.auth import InMemoryIdentityProvider
from planner.errors import NetworkError
from planner.services import AccountService, BudgetService, NoteService, ProfileService, TaskService
from planner.session import SessionContext
from planner.store import InMemoryDocumentStore, budget_path, user_path
from planner.sync import NOTES_KIND, TASKS_KIND, TRANSACTIONS_KIND, SyncController


def at(hour):
    return datetime(2025, 1, 2, hour, tzinfo=timezone.utc)


class Clock:

    def __init__(self, start):
        self.now = start

    def __call__(self):
        self.now = self.now.replace(minute=self.now.minute + 1)
        return self.now


def controller_for(store, kind, uid="u1"):
    controller = SyncController(store, kind)
    controller.start(uid)
    return controller


@pytest.mark.asyncio
async def test_add_todo_with_end_before_start_makes_no_store_call():
    store = InMemoryDocumentStore()
    service = TaskService(controller_for(store, TASKS_KIND))
    result = await service.add_or_edit_todo("Report", at(11), at(10), "High")
    assert result.get_error()["message"] == "End time must be after the start time."
    assert store.write_attempts == 0

    result = await service.add_or_edit_todo("Report", "2025-01-02T10:00", "2025-01-01T10:00")
    assert result.get_error()["message"] == "End time must be after the start time."
    assert store.write_attempts == 0


@pytest.mark.asyncio
async def test_add_edit_and_toggle_todo():
    store = InMemoryDocumentStore()
    controller = controller_for(store, TASKS_KIND)
    service = TaskService(controller)

    todo_id = (await service.add_or_edit_todo("Report", at(9), at(10))).get_or_else(None)
    await service.toggle_complete(todo_id)
    await service.add_or_edit_todo("Report v2", at(9), at(11), "Med", todo_id=todo_id)

    todo = controller.get(todo_id).get_or_else(None)
    assert (todo.text, todo.end, todo.priority) == ("Report v2", at(11), "Med")
    # editing keeps the completion flag
    assert todo.completed is True

    await service.toggle_complete(todo_id)
    assert controller.items[0].completed is False
    assert service.events()[0].title == "Report v2"

    await service.delete_todo(todo_id)
    assert controller.items == ()


@pytest.mark.asyncio
async def test_toggle_unknown_todo():
    store = InMemoryDocumentStore()
    service = TaskService(controller_for(store, TASKS_KIND))
    result = await service.toggle_complete("nope")
    assert result.get_error()["error"] == "not_found"


@pytest.mark.asyncio
async def test_notes_are_stamped_and_searchable():
    store = InMemoryDocumentStore()
    controller = controller_for(store, NOTES_KIND)
    service = NoteService(controller, Clock(at(8)))

    for title in ["Groceries", "Gym Plan", "Budget Notes"]:
        assert (await service.add_or_edit_note(title, "body")).is_right()

    assert [n.title for n in controller.items] == ["Budget Notes", "Gym Plan", "Groceries"]
    assert [n.title for n in service.search("gy")] == ["Gym Plan"]

    groceries = service.search("groceries")[0]
    await service.add_or_edit_note("Groceries", "eggs", "Tag1", note_id=groceries.id)
    assert controller.items[0].title == "Groceries"
    assert controller.items[0].tag == "Tag1"

    await service.delete_note(groceries.id)
    assert len(controller.items) == 2


@pytest.mark.asyncio
async def test_budget_flow():
    store = InMemoryDocumentStore()
    controller = controller_for(store, TRANSACTIONS_KIND)
    service = BudgetService(store, controller, lambda: at(12))

    budget = (await service.load_weekly_budget()).get_or_else(None)
    assert budget.amount == Decimal("0")

    assert (await service.set_weekly_budget("100")).is_right()
    assert await store.get(budget_path("u1")) == {"amount": "100"}
    budget = (await service.load_weekly_budget()).get_or_else(None)

    await service.add_transaction("Groceries", "50", "Food")
    await service.add_transaction("Bus", "30", "Travel")
    summary = service.summary(budget)
    assert summary.total_expenses == Decimal("80")
    assert summary.remaining == Decimal("20")
    assert not summary.near_threshold
    assert not summary.exceeded

    tx_id = controller.items[0].id
    await service.delete_transaction(tx_id)
    assert len(controller.items) == 1


@pytest.mark.asyncio
async def test_budget_rejections():
    store = InMemoryDocumentStore()
    controller = SyncController(store, TRANSACTIONS_KIND)
    service = BudgetService(store, controller)
    assert (await service.set_weekly_budget("10")).get_error()["error"] == "not_subscribed"
    assert (await service.load_weekly_budget()).get_error()["error"] == "not_subscribed"

    controller.start("u1")
    assert (await service.set_weekly_budget("-10")).is_left()
    store.fail_next_write(NetworkError("offline"))
    assert (await service.set_weekly_budget("10")).get_error()["error"] == "write_failed"
    assert (await service.add_transaction("Lunch", "abc", "Food")).is_left()


@pytest.mark.asyncio
async def test_profile_name_update():
    store = InMemoryDocumentStore()
    profiles = ProfileService(store)
    await profiles.save_user_info("u1", "Ada", "Lovelace", "ada@example.com")
    profile = (await profiles.load_profile("u1")).get_or_else(None)
    assert profile.full_name == "Ada Lovelace"

    same = await profiles.update_name("u1", "Ada", "Lovelace", profile)
    assert same.get_error()["message"] == "New name cannot be the same as the current name!"

    assert (await profiles.update_name("u1", "Ada", "King", profile)).get_or_else(None) == "Name updated successfully!"
    assert await store.get(user_path("u1")) == {"firstName": "Ada", "lastName": "King", "email": "ada@example.com"}

    store.fail_next_write(NetworkError("offline"))
    failed = await profiles.update_name("u1", "Augusta", "King", profile)
    assert failed.get_error()["message"] == "Failed to update name. Please try again."

    assert (await profiles.load_profile("nobody")).get_or_else("x") is None


@pytest.mark.asyncio
async def test_sign_up_saves_profile():
    store = InMemoryDocumentStore()
    session = SessionContext(InMemoryIdentityProvider())
    accounts = AccountService(session, ProfileService(store))

    result = await accounts.sign_up("Ada", "Lovelace", "ada@example.com", "ada@example.com", "secret1", "secret1")
    assert result.is_right()
    uid = result.get_or_else(None).uid
    assert session.user_id == uid
    assert (await store.get(user_path(uid)))["firstName"] == "Ada"


@pytest.mark.asyncio
async def test_sign_up_errors():
    store = InMemoryDocumentStore()
    session = SessionContext(InMemoryIdentityProvider())
    accounts = AccountService(session, ProfileService(store))

    mismatch = await accounts.sign_up("A", "B", "a@b.co", "x@b.co", "secret1", "secret1")
    assert mismatch.get_error()["message"] == "Emails do not match."

    weak = await accounts.sign_up("A", "B", "a@b.co", "a@b.co", "abc", "abc")
    assert weak.get_error()["message"] == "Password should be at least 6 characters."

    await accounts.sign_up("A", "B", "a@b.co", "a@b.co", "secret1", "secret1")
    await accounts.log_out()
    taken = await accounts.sign_up("A", "B", "a@b.co", "a@b.co", "secret1", "secret1")
    assert taken.get_error()["message"] == "This email is already in use."


@pytest.mark.asyncio
async def test_log_in_and_out():
    store = InMemoryDocumentStore()
    session = SessionContext(InMemoryIdentityProvider())
    accounts = AccountService(session, ProfileService(store))
    await accounts.sign_up("A", "B", "a@b.co", "a@b.co", "secret1", "secret1")
    await accounts.log_out()
    assert not session.signed_in

    wrong = await accounts.log_in("a@b.co", "wrong-password")
    assert wrong.get_error()["message"] == "No user found or incorrect password. Please try again."

    assert (await accounts.log_in("A@B.co", "secret1")).is_right()
    assert session.signed_in

    google = await accounts.log_in_with_provider("google", "token-1")
    assert google.get_or_else(None).provider == "google"
    unknown = await accounts.log_in_with_provider("myspace", "token-1")
    assert unknown.get_error()["message"] == "This sign-in method is not available."


@pytest.mark.asyncio
async def test_local_note_sorts_against_notes_from_other_clients(new_york):
    store = InMemoryDocumentStore()
    controller = controller_for(store, NOTES_KIND)
    service = NoteService(controller, lambda: datetime(2025, 1, 2, 10, 0))

    # written elsewhere at 14:00 UTC, an hour before the local save below
    await store.add("users/u1/notes", {"title": "older", "text": "x", "edit": 1735826400000, "tag": ""})
    await service.add_or_edit_note("newer", "x")

    assert [n.title for n in controller.items] == ["newer", "older"]
    assert store.documents("users/u1/notes", "edit")[-1].data["edit"] == 1735830000000
