"""
Pytest Configuration and Fixtures for the Questline Test Suite
==============================================================

Purpose
-------
Centralized fixtures for the weekly quest engine tests: configuration,
a controllable clock, quest content, domain factories, a SQLite-backed
`DatabaseService`, a fully wired `WeeklyQuestService` and testcontainers
for the integration suite.

Architecture Notes
------------------
- Unit tests run on in-memory objects and mocks (fast, isolated)
- Service and API tests run against a per-test SQLite file via aiosqlite
- Integration tests use testcontainers (real PostgreSQL and Redis) and are
  deselected by default (`-m integration` to run them)
- Fixtures follow scope hierarchy: session > module > function
"""

from __future__ import annotations

import os

# Must be set before questline.core.config is imported (it loads on import)
os.environ["ENVIRONMENT"] = "testing"
os.environ["LOG_LEVEL"] = "DEBUG"
os.environ["LOCK_BACKEND"] = "memory"
os.environ["DATABASE_AUTO_CREATE"] = "true"

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncGenerator, Dict, Generator, List, Mapping, Tuple

import pytest
import pytest_asyncio
from testcontainers.postgres import PostgresContainer
from testcontainers.redis import RedisContainer

from questline.core.config.config import Config
from questline.core.config.manager import ConfigManager
from questline.core.database.service import DatabaseService
from questline.core.event.bus import EventBus
from questline.core.logging.logger import get_logger
from questline.domain.models.quest_week import QUEST_DAYS, QuestWeek
from questline.modules.shared.user_lock import UserLockManager
from questline.modules.weekly_quest import constants
from questline.modules.weekly_quest.attempt_engine import AttemptEngine
from questline.modules.weekly_quest.content import QuestContentProvider
from questline.modules.weekly_quest.ledger import StreakLedger
from questline.modules.weekly_quest.reward_chest import RewardChestController, RewardPolicy
from questline.modules.weekly_quest.service import WeeklyQuestService
from questline.modules.weekly_quest.week_calendar import FixedClock
from questline.modules.xp.ledger_service import XPLedgerService

logger = get_logger(__name__)

PROJECT_CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"

# Monday 2025-01-06, 09:00 in Asia/Manila (UTC+8)
MONDAY_MORNING_UTC = datetime(2025, 1, 6, 1, 0, tzinfo=timezone.utc)
TEST_TIMEZONE = "Asia/Manila"

CORRECT_ANSWER = "A"
WRONG_ANSWER = "B"
QUESTIONS_PER_DAY = 5

ALL_EVENTS = [
    value
    for name, value in vars(constants).items()
    if name.startswith("EVENT_") and isinstance(value, str)
]


# ============================================================================
# PYTEST CONFIGURATION
# ============================================================================


def pytest_configure(config):
    """Reload static config with the test environment variables."""
    Config.load()


# ============================================================================
# CONFIGURATION FIXTURES
# ============================================================================


class StaticConfig:
    """Dot-notation reader over a plain dict; stands in for ConfigManager."""

    def __init__(self, values: Mapping[str, Any]) -> None:
        self._values = values

    def get(self, key: str, default: Any = None) -> Any:
        value: Any = self._values
        for part in key.split("."):
            if not isinstance(value, Mapping) or part not in value:
                return default
            value = value[part]
        return default if value is None else value


def build_quest_days(lives: int = 3) -> Dict[str, Any]:
    """Five questions per weekday; the correct answer is always "A"."""
    return {
        day: {
            "title": f"{day.capitalize()} Case",
            "lives": lives,
            "questions": [
                {
                    "id": f"{day[:3]}-q{n}",
                    "prompt": f"{day} question {n}",
                    "type": "multiple_choice",
                    "options": ["A", "B", "C", "D"],
                    "correct_answer": CORRECT_ANSWER,
                    "explanation": f"Because {n}",
                }
                for n in range(1, QUESTIONS_PER_DAY + 1)
            ],
        }
        for day in QUEST_DAYS
    }


@pytest.fixture(autouse=True)
def config_manager() -> Generator[type[ConfigManager], None, None]:
    """
    ConfigManager loaded from the project's config/ with test content.

    Scope: function (overrides never leak between tests)
    """
    ConfigManager.reset()
    ConfigManager.load(PROJECT_CONFIG_DIR)
    ConfigManager.set_override("weekly_quest.days", build_quest_days())
    ConfigManager.set_override("weekly_quest.timezone", TEST_TIMEZONE)
    yield ConfigManager
    ConfigManager.reset()


@pytest.fixture
def content() -> QuestContentProvider:
    return QuestContentProvider(StaticConfig({"weekly_quest": {"days": build_quest_days()}}))


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(MONDAY_MORNING_UTC)


# ============================================================================
# DOMAIN FIXTURES
# ============================================================================


@pytest.fixture
def quest_week(content: QuestContentProvider) -> QuestWeek:
    """Fresh week starting Monday 2025-01-06."""
    return QuestWeek.new(
        "user-1",
        MONDAY_MORNING_UTC.date(),
        content.lives_by_day(),
        timezone_name=TEST_TIMEZONE,
    )


@pytest.fixture
def ledger() -> StreakLedger:
    return StreakLedger()


@pytest.fixture
def engine(content: QuestContentProvider, ledger: StreakLedger) -> AttemptEngine:
    return AttemptEngine(content, ledger)


@pytest.fixture
def chest() -> RewardChestController:
    return RewardChestController(RewardPolicy())


# ============================================================================
# EVENT FIXTURES
# ============================================================================


@pytest.fixture
def event_bus() -> EventBus:
    """Isolated bus so tests never see each other's listeners."""
    return EventBus()


@pytest.fixture
def recorded_events(event_bus: EventBus) -> List[Tuple[str, Dict[str, Any]]]:
    """Every weekly quest event published on `event_bus` as (name, payload), in order."""
    recorded: List[Tuple[str, Dict[str, Any]]] = []

    def recorder(event_name: str):
        async def record(payload: Dict[str, Any]) -> None:
            recorded.append((event_name, payload))

        return record

    for event_name in ALL_EVENTS:
        event_bus.subscribe(event_name, recorder(event_name), identifier=f"test-{event_name}")
    return recorded


# ============================================================================
# DATABASE FIXTURES (Service Tests)
# ============================================================================


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'questline.db'}"


@pytest_asyncio.fixture
async def database(database_url: str) -> AsyncGenerator[type[DatabaseService], None]:
    """
    Initialized DatabaseService on a fresh SQLite file.

    Scope: function (clean slate per test)
    """
    await DatabaseService.initialize(database_url)
    await DatabaseService.create_schema()
    yield DatabaseService
    await DatabaseService.shutdown()


@pytest.fixture
def xp_ledger(event_bus: EventBus) -> XPLedgerService:
    return XPLedgerService(ConfigManager, event_bus, get_logger("tests.xp_ledger"))


@pytest.fixture
def service(
    database: type[DatabaseService],
    event_bus: EventBus,
    xp_ledger: XPLedgerService,
    clock: FixedClock,
) -> WeeklyQuestService:
    """WeeklyQuestService on SQLite with the in-process lock and a fixed clock."""
    return WeeklyQuestService(
        ConfigManager,
        event_bus,
        get_logger("tests.weekly_quest"),
        xp_ledger,
        lock_manager=UserLockManager(backend="memory", wait_timeout_seconds=2.0),
        clock=clock,
    )


# ============================================================================
# MOCK FIXTURES (Unit Tests)
# ============================================================================


@pytest.fixture
def mock_event_bus(mocker):
    """
    Mock EventBus for unit tests.

    Scope: function
    """
    mock_bus = mocker.MagicMock()
    mock_bus.publish = mocker.AsyncMock(return_value=[])
    mock_bus.subscribe = mocker.MagicMock()
    return mock_bus


# ============================================================================
# TESTCONTAINERS FIXTURES (Integration Tests)
# ============================================================================


@pytest.fixture(scope="session")
def postgres_container() -> Generator[PostgresContainer, None, None]:
    """
    Start PostgreSQL testcontainer for integration tests.

    Scope: session (container persists across all tests)
    """
    logger.info("Starting PostgreSQL testcontainer...")
    container = PostgresContainer(image="postgres:17-alpine", driver="asyncpg")
    container.start()
    yield container
    logger.info("Stopping PostgreSQL testcontainer...")
    container.stop()


@pytest.fixture(scope="session")
def redis_container() -> Generator[RedisContainer, None, None]:
    """
    Start Redis testcontainer for integration tests.

    Scope: session (container persists across all tests)
    """
    logger.info("Starting Redis testcontainer...")
    container = RedisContainer(image="redis:7-alpine")
    container.start()
    yield container
    logger.info("Stopping Redis testcontainer...")
    container.stop()


@pytest.fixture
def postgres_url(postgres_container: PostgresContainer) -> str:
    return postgres_container.get_connection_url()


@pytest.fixture
def redis_url(redis_container: RedisContainer) -> str:
    host = redis_container.get_container_host_ip()
    port = redis_container.get_exposed_port(6379)
    return f"redis://{host}:{port}/0"


# ============================================================================
# UTILITY FUNCTIONS
# ============================================================================


async def complete_day(service: WeeklyQuestService, user_id: str, day: str) -> Dict[str, Any]:
    """Answer every question of `day` correctly; returns the last answer view."""
    result: Dict[str, Any] = {}
    for n in range(1, QUESTIONS_PER_DAY + 1):
        result = await service.submit_answer(user_id, day, f"{day[:3]}-q{n}", CORRECT_ANSWER)
    return result


def event_names(recorded: List[Tuple[str, Dict[str, Any]]], user_id: str) -> List[str]:
    return [name for name, payload in recorded if payload.get("user_id") == user_id]
