"""Page-level owners of sync controllers.

A page starts its controllers on ``mount`` and stops every one of them on
``unmount``; controllers are never reused across mounts. ``Workspace`` mounts a
fresh set of pages whenever a session starts and unmounts them when it ends.
"""
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from planner.config import Settings
from planner.domain import UserProfile, WeeklyBudget
from planner.events import Event
from planner.functional import Either, failure
from planner.services import BudgetService, NoteService, ProfileService, TaskService
from planner.session import SessionContext
from planner.store import DocumentStore
from planner.sync import NOTES_KIND, TASKS_KIND, TRANSACTIONS_KIND, SyncController
from planner.transforms import BudgetSummary, CalendarEvent, format_clock
from planner.weather import Locator, WeatherClient, WeatherReport, load_weather

logger = logging.getLogger(__name__)


class Page:

    def __init__(self):
        self.controllers: List[SyncController] = []
        self.user_id: Optional[str] = None

    @property
    def mounted(self) -> bool:
        return self.user_id is not None

    def mount(self, user_id: str) -> None:
        if self.mounted:
            raise RuntimeError(f"{type(self).__name__} is already mounted")
        self.user_id = user_id
        for controller in self.controllers:
            controller.start(user_id)

    def unmount(self) -> None:
        for controller in self.controllers:
            controller.stop()
        self.user_id = None


class TasksPage(Page):

    def __init__(self, store: DocumentStore):
        super().__init__()
        self.todos = SyncController(store, TASKS_KIND)
        self.service = TaskService(self.todos)
        self.controllers = [self.todos]


class NotesPage(Page):

    def __init__(self, store: DocumentStore, clock=datetime.now):
        super().__init__()
        self.notes = SyncController(store, NOTES_KIND)
        self.service = NoteService(self.notes, clock)
        self.controllers = [self.notes]
        self.query = ""

    def visible_notes(self):
        return self.service.search(self.query)


class BudgetPage(Page):

    def __init__(self, store: DocumentStore, settings: Settings, clock=datetime.now):
        super().__init__()
        self.transactions = SyncController(store, TRANSACTIONS_KIND)
        self.service = BudgetService(store, self.transactions, clock, settings.near_threshold)
        self.controllers = [self.transactions]
        self.weekly_budget = WeeklyBudget()
        self.budget_loaded = False
        self.budget_error: Optional[dict] = None

    async def refresh_budget(self) -> Either[dict, WeeklyBudget]:
        result = await self.service.load_weekly_budget()
        self._remember(result)
        return result

    async def set_budget(self, amount) -> Either[dict, WeeklyBudget]:
        result = await self.service.set_weekly_budget(amount)
        if result.is_right():
            self._remember(result)
        return result

    def _remember(self, result: Either[dict, WeeklyBudget]) -> None:
        if result.is_right():
            self.weekly_budget = result.get_or_else(self.weekly_budget)
            self.budget_loaded = True
            self.budget_error = None
        else:
            self.budget_error = result.get_error()

    def summary(self) -> BudgetSummary:
        return self.service.summary(self.weekly_budget)


class OverviewPage(Page):
    """Clock, weather and the calendar built from the task list."""

    def __init__(self, store: DocumentStore, weather_client: Optional[WeatherClient] = None,
                 locate: Optional[Locator] = None):
        super().__init__()
        self.calendar = SyncController(store, TASKS_KIND)
        self.tasks = TaskService(self.calendar)
        self.controllers = [self.calendar]
        self.weather_client = weather_client
        self.locate = locate
        self.weather: Optional[Either[dict, WeatherReport]] = None

    def events(self) -> Tuple[CalendarEvent, ...]:
        return self.tasks.events()

    def clock(self, now: Optional[datetime] = None) -> Tuple[str, str]:
        return format_clock(now or datetime.now())

    async def refresh_weather(self, locate: Optional[Locator] = None) -> Either[dict, WeatherReport]:
        locate = locate or self.locate
        if locate is None:
            self.weather = failure("location_unavailable", "Could not determine your location.")
        else:
            self.weather = await load_weather(locate, self.weather_client)
        return self.weather


class Workspace:
    """Everything a signed-in user sees, rebuilt for every session."""

    def __init__(self, store: DocumentStore, session: SessionContext, settings: Settings,
                 weather_client: Optional[WeatherClient] = None, locate: Optional[Locator] = None,
                 clock: Callable[[], datetime] = datetime.now):
        self.store = store
        self.session = session
        self.settings = settings
        self.weather_client = weather_client
        self.locate = locate
        self.clock = clock
        self.profiles = ProfileService(store)
        self.profile: Optional[UserProfile] = None
        self.pages: Dict[str, Page] = {}
        self._unsubscribers = [
            session.on_start(self._on_session_started),
            session.on_end(self._on_session_ended),
        ]
        if session.user_id is not None:
            self.mount(session.user_id)

    @property
    def tasks(self) -> TasksPage:
        return self.pages["tasks"]

    @property
    def notes(self) -> NotesPage:
        return self.pages["notes"]

    @property
    def budget(self) -> BudgetPage:
        return self.pages["budget"]

    @property
    def overview(self) -> OverviewPage:
        return self.pages["overview"]

    def _on_session_started(self, event: Event, payload: dict) -> dict:
        self.mount(payload["uid"])
        return {"mounted": sorted(self.pages)}

    def _on_session_ended(self, event: Event, payload: dict) -> dict:
        self.unmount()
        return {"unmounted": payload["uid"]}

    def mount(self, user_id: str) -> None:
        self.unmount()
        self.pages = {
            "overview": OverviewPage(self.store, self.weather_client, self.locate),
            "tasks": TasksPage(self.store),
            "notes": NotesPage(self.store, self.clock),
            "budget": BudgetPage(self.store, self.settings, self.clock),
        }
        for page in self.pages.values():
            page.mount(user_id)
        logger.info("workspace mounted for %s", user_id)

    def unmount(self) -> None:
        if not self.pages:
            return
        for page in self.pages.values():
            page.unmount()
        self.pages = {}
        self.profile = None
        logger.info("workspace unmounted")

    async def load_profile(self) -> Optional[UserProfile]:
        uid = self.session.user_id
        if uid is None:
            return None
        result = await self.profiles.load_profile(uid)
        # session may have changed while the read was in flight
        if result.is_right() and self.session.user_id == uid:
            self.profile = result.get_or_else(None)
        return self.profile

    @property
    def display_name(self) -> str:
        return self.profile.full_name if self.profile else ""

    def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        self.unmount()
