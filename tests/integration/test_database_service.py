"""
Integration Tests for DatabaseService, the quest models and the Redis lock
==========================================================================

Purpose
-------
Run the persistence layer and the distributed user lock against real
PostgreSQL and Redis (testcontainers). SQLite covers the service suite;
these tests pin the behavior that only a real server shows: JSONB columns,
row locks, check constraints, and SET NX locking.

Testing Strategy
----------------
- Session-scoped containers, function-scoped service initialization
- Every table is truncated after each test (clean slate)
- Requires Docker; select with `-m integration`
"""

import asyncio
from datetime import date, datetime, timezone

import pytest
import pytest_asyncio
from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from questline.core.config.manager import ConfigManager
from questline.core.database.base import Base
from questline.core.database.service import DatabaseService
from questline.core.logging.logger import get_logger
from questline.core.redis.service import RedisService
from questline.database.models.economy.reward_claim import RewardClaim
from questline.database.models.progression.quest_week import UserQuestWeek
from questline.modules.shared.exceptions import AlreadyClaimedError, ConcurrentUpdateError
from questline.modules.shared.user_lock import UserLockManager
from questline.modules.weekly_quest.constants import QUEST_DAYS
from questline.modules.weekly_quest.service import WeeklyQuestService

from tests.conftest import complete_day

pytestmark = [pytest.mark.integration, pytest.mark.database]

WEEK_START = date(2025, 1, 6)


def make_week_row(user_id: str = "user-1") -> UserQuestWeek:
    return UserQuestWeek(
        user_id=user_id,
        week_start_date=WEEK_START,
        timezone="Asia/Manila",
        day_states={},
        completed_days=[],
    )


@pytest_asyncio.fixture
async def pg_database(postgres_url):
    await DatabaseService.initialize(postgres_url)
    await DatabaseService.create_schema()
    yield DatabaseService
    tables = ", ".join(Base.metadata.tables)
    async with DatabaseService.get_transaction() as session:
        await session.execute(text(f"TRUNCATE {tables} CASCADE"))
    await DatabaseService.shutdown()


@pytest_asyncio.fixture
async def redis_service(redis_url):
    await RedisService.initialize(redis_url)
    yield RedisService
    await RedisService.client().flushdb()
    await RedisService.shutdown()


# ============================================================================
# DATABASE CONNECTION TESTS
# ============================================================================


class TestDatabaseConnection:
    async def test_health_check(self, pg_database):
        assert await DatabaseService.health_check() is True

    async def test_schema_created(self, pg_database):
        async with DatabaseService.get_session() as session:
            result = await session.execute(
                text(
                    "SELECT table_name FROM information_schema.tables "
                    "WHERE table_schema = 'public'"
                )
            )
            tables = {row.table_name for row in result.fetchall()}

        assert {
            "user_quest_weeks",
            "weekly_progress_archive",
            "reward_claims",
            "xp_accounts",
            "xp_grants",
        } <= tables


# ============================================================================
# MODEL PERSISTENCE TESTS
# ============================================================================


class TestModelPersistence:
    async def test_day_states_round_trip_as_jsonb(self, pg_database):
        async with DatabaseService.get_transaction() as session:
            row = make_week_row()
            row.day_states = {"monday": {"status": "completed", "score": 5}}
            session.add(row)

        async with DatabaseService.get_session() as session:
            result = await session.execute(
                select(UserQuestWeek).where(
                    UserQuestWeek.day_states["monday"]["status"].as_string() == "completed"
                )
            )
            found = result.scalar_one()

        assert found.day_states["monday"]["score"] == 5
        assert found.version == 1

    async def test_negative_duty_passes_rejected(self, pg_database):
        with pytest.raises(IntegrityError):
            async with DatabaseService.get_transaction() as session:
                row = make_week_row()
                row.duty_passes = -1
                session.add(row)

    async def test_duplicate_reward_claim_rejected(self, pg_database):
        claimed_at = datetime(2025, 1, 11, 1, 0, tzinfo=timezone.utc)
        async with DatabaseService.get_transaction() as session:
            session.add(RewardClaim(user_id="user-1", claim_type="weekly_chest",
                                    claim_key="2025-01-06", reward_xp=300, claimed_at=claimed_at))

        with pytest.raises(IntegrityError):
            async with DatabaseService.get_transaction() as session:
                session.add(RewardClaim(user_id="user-1", claim_type="weekly_chest",
                                        claim_key="2025-01-06", reward_xp=300, claimed_at=claimed_at))


# ============================================================================
# CONCURRENCY TESTS
# ============================================================================


class TestOptimisticLocking:
    async def test_stale_version_rejected(self, pg_database):
        async with DatabaseService.get_transaction() as session:
            session.add(make_week_row())

        async with DatabaseService.get_session() as first, DatabaseService.get_session() as second:
            row_a = await first.get(UserQuestWeek, "user-1")
            row_b = await second.get(UserQuestWeek, "user-1")

            row_a.current_streak = 1
            row_a.longest_streak = 1
            await first.commit()

            row_b.duty_passes = 1
            with pytest.raises(StaleDataError):
                await second.flush()

    async def test_locked_entity_serializes_writers(self, pg_database):
        async with DatabaseService.get_transaction() as session:
            session.add(make_week_row())

        async def add_pass() -> None:
            async with DatabaseService.get_transaction() as session:
                row = await DatabaseService.get_locked_entity(session, UserQuestWeek, "user-1")
                row.duty_passes += 1
                await asyncio.sleep(0.05)

        await asyncio.gather(add_pass(), add_pass(), add_pass())

        async with DatabaseService.get_session() as session:
            row = await session.get(UserQuestWeek, "user-1")
        assert row.duty_passes == 3
        assert row.version == 4


# ============================================================================
# REDIS LOCK TESTS
# ============================================================================


class TestRedisUserLock:
    async def test_lock_key_is_held_in_redis(self, redis_service):
        locks = UserLockManager(backend="redis", wait_timeout_seconds=0.5)

        async with locks.hold("user-1", "claim_reward"):
            assert await RedisService.client().exists("quest:user-1") == 1

        assert await RedisService.client().exists("quest:user-1") == 0

    async def test_contended_lock_times_out(self, redis_service):
        locks = UserLockManager(backend="redis", wait_timeout_seconds=0.1)

        async with locks.hold("user-1"):
            with pytest.raises(ConcurrentUpdateError) as exc_info:
                async with locks.hold("user-1"):
                    pass

        assert exc_info.value.details["reason"] == "lock_timeout"

    async def test_other_users_are_independent(self, redis_service):
        locks = UserLockManager(backend="redis", wait_timeout_seconds=0.1)

        async with locks.hold("user-1"):
            async with locks.hold("user-2"):
                assert await RedisService.client().exists("quest:user-2") == 1


# ============================================================================
# END-TO-END ON POSTGRES + REDIS
# ============================================================================


class TestWeeklyQuestOnPostgres:
    @pytest.fixture
    def pg_service(self, pg_database, redis_service, event_bus, xp_ledger, clock):
        return WeeklyQuestService(
            ConfigManager,
            event_bus,
            get_logger("tests.integration.weekly_quest"),
            xp_ledger,
            lock_manager=UserLockManager(backend="redis", wait_timeout_seconds=5.0),
            clock=clock,
        )

    async def test_week_completion_and_single_claim(self, pg_service, clock):
        for offset, day in enumerate(QUEST_DAYS):
            clock.set(datetime(2025, 1, 6 + offset, 1, 0, tzinfo=timezone.utc))
            await complete_day(pg_service, "user-1", day)
        clock.set(datetime(2025, 1, 11, 1, 0, tzinfo=timezone.utc))

        results = await asyncio.gather(
            pg_service.claim_reward("user-1"),
            pg_service.claim_reward("user-1"),
            return_exceptions=True,
        )

        granted = [r for r in results if isinstance(r, dict)]
        rejected = [r for r in results if isinstance(r, AlreadyClaimedError)]
        assert len(granted) == 1
        assert len(rejected) == 1
        assert granted[0]["totalXP"] == 300

        status = await pg_service.get_status("user-1")
        assert status["currentStreak"] == 5
        assert status["rewardChest"]["isClaimed"] is True
