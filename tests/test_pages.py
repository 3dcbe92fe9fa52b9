from datetime import datetime, timezone
from decimal import Decimal

import pytest

from planner.auth import InMemoryIdentityProvider
from planner.config import Settings
from planner.events import SESSION_ENDED, SESSION_STARTED
from planner.pages import Workspace
from planner.services import ProfileService
from planner.session import SessionContext
from planner.store import InMemoryDocumentStore
from planner.sync import SyncState


def at(hour):
    return datetime(2025, 1, 2, hour, tzinfo=timezone.utc)


async def signed_up(provider, email):
    session = await provider.sign_up(email, "secret1")
    await provider.sign_out()
    return session.uid


def build():
    store = InMemoryDocumentStore()
    provider = InMemoryIdentityProvider()
    session = SessionContext(provider)
    workspace = Workspace(store, session, Settings(), clock=lambda: at(8))
    return store, provider, session, workspace


def all_controllers(workspace):
    return [c for page in workspace.pages.values() for c in page.controllers]


@pytest.mark.asyncio
async def test_sign_in_mounts_every_page():
    store, provider, session, workspace = build()
    await signed_up(provider, "ada@example.com")
    assert workspace.pages == {}

    await session.sign_in("ada@example.com", "secret1")
    assert sorted(workspace.pages) == ["budget", "notes", "overview", "tasks"]
    assert all(c.state is SyncState.SYNCED for c in all_controllers(workspace))
    assert store.active_watch_count == 4


@pytest.mark.asyncio
async def test_sign_out_stops_every_controller():
    store, provider, session, workspace = build()
    await signed_up(provider, "ada@example.com")
    await session.sign_in("ada@example.com", "secret1")
    controllers = all_controllers(workspace)

    await session.sign_out()
    assert all(c.state is SyncState.STOPPED for c in controllers)
    assert store.active_watch_count == 0
    assert workspace.pages == {}


@pytest.mark.asyncio
async def test_switching_users_tears_down_before_mounting():
    store, provider, session, workspace = build()
    await signed_up(provider, "ada@example.com")
    await signed_up(provider, "grace@example.com")

    order = []
    session.on_end(lambda e, p: order.append((SESSION_ENDED, p["uid"])))
    session.on_start(lambda e, p: order.append((SESSION_STARTED, p["uid"])))

    ada = await session.sign_in("ada@example.com", "secret1")
    await workspace.tasks.service.add_or_edit_todo("Ada's task", at(9), at(10))
    old = all_controllers(workspace)

    grace = await session.sign_in("grace@example.com", "secret1")
    assert order == [(SESSION_STARTED, ada.uid), (SESSION_ENDED, ada.uid), (SESSION_STARTED, grace.uid)]
    assert all(c.state is SyncState.STOPPED for c in old)
    assert workspace.tasks.todos.user_id == grace.uid
    assert workspace.tasks.todos.items == ()
    assert store.active_watch_count == 4


@pytest.mark.asyncio
async def test_calendar_follows_task_edits():
    store, provider, session, workspace = build()
    await signed_up(provider, "ada@example.com")
    await session.sign_in("ada@example.com", "secret1")

    await workspace.tasks.service.add_or_edit_todo("Standup", at(9), at(10), "High")
    events = workspace.overview.events()
    assert [(e.title, e.color) for e in events] == [("Standup", "#f87171")]

    todo_id = workspace.tasks.todos.items[0].id
    await workspace.tasks.service.toggle_complete(todo_id)
    assert workspace.overview.events()[0].color == "#d1d1d1"


@pytest.mark.asyncio
async def test_notes_page_search():
    store, provider, session, workspace = build()
    await signed_up(provider, "ada@example.com")
    await session.sign_in("ada@example.com", "secret1")
    page = workspace.notes
    for title in ["Groceries", "Gym Plan", "Budget Notes"]:
        await page.service.add_or_edit_note(title, "body")

    page.query = "gy"
    assert [n.title for n in page.visible_notes()] == ["Gym Plan"]
    page.query = ""
    assert len(page.visible_notes()) == 3


@pytest.mark.asyncio
async def test_budget_page():
    store, provider, session, workspace = build()
    await signed_up(provider, "ada@example.com")
    await session.sign_in("ada@example.com", "secret1")
    page = workspace.budget

    await page.refresh_budget()
    assert page.budget_loaded
    assert page.weekly_budget.amount == Decimal("0")

    await page.set_budget("100")
    await page.service.add_transaction("Groceries", "90", "Food")
    summary = page.summary()
    assert summary.near_threshold
    assert not summary.exceeded

    rejected = await page.set_budget("-3")
    assert rejected.is_left()
    assert page.weekly_budget.amount == Decimal("100")


@pytest.mark.asyncio
async def test_profile_and_display_name():
    store, provider, session, workspace = build()
    await signed_up(provider, "ada@example.com")
    ada = await session.sign_in("ada@example.com", "secret1")
    await ProfileService(store).save_user_info(ada.uid, "Ada", "Lovelace", "ada@example.com")

    await workspace.load_profile()
    assert workspace.display_name == "Ada Lovelace"

    await session.sign_out()
    assert workspace.profile is None
    assert await workspace.load_profile() is None


@pytest.mark.asyncio
async def test_weather_without_configuration():
    store, provider, session, workspace = build()
    await signed_up(provider, "ada@example.com")
    await session.sign_in("ada@example.com", "secret1")

    result = await workspace.overview.refresh_weather()
    assert result.get_error()["error"] == "location_unavailable"
    assert workspace.overview.clock(datetime(2026, 10, 19, 9, 0, 0)) == ("October 19, 2026", "9:00:00 AM")


@pytest.mark.asyncio
async def test_restored_session_mounts_on_construction():
    store = InMemoryDocumentStore()
    provider = InMemoryIdentityProvider()
    await provider.sign_up("ada@example.com", "secret1")
    session = SessionContext(provider)
    assert session.loading

    await session.restore()
    assert not session.loading
    workspace = Workspace(store, session, Settings())
    assert workspace.tasks.todos.state is SyncState.SYNCED

    workspace.close()
    assert store.active_watch_count == 0
    assert session.events.subscriber_count(SESSION_STARTED) == 0
