"""
Service tests for WeeklyQuestService.

Runs the full read-modify-write path (per-user lock, transaction, rollover,
aggregate, write-back, event publication) against a per-test SQLite file
with a fixed clock. Calendar: Monday 2025-01-06 is the first quest week,
all clock instants are 09:00 in Asia/Manila.
"""

import asyncio
from datetime import datetime, timezone

import pytest
from sqlalchemy.orm.exc import StaleDataError

from questline.core.config.manager import ConfigManager
from questline.core.database.service import DatabaseService
from questline.core.event import event_bus as global_event_bus
from questline.core.infra.audit_logger import AuditLogger
from questline.core.logging.logger import get_logger
from questline.modules.shared.exceptions import (
    AlreadyClaimedError,
    ConcurrentUpdateError,
    InsufficientPassesError,
    InvalidStateError,
    NotFoundError,
    NotMissedError,
    NotReadyError,
    ValidationError,
)
from questline.modules.shared.user_lock import UserLockManager
from questline.modules.weekly_quest.constants import (
    EVENT_ANSWER_SUBMITTED,
    EVENT_DAY_COMPLETED,
    EVENT_DAY_MISSED,
    EVENT_DUTY_PASS_CLAIMED,
    EVENT_DUTY_PASS_USED,
    EVENT_REWARD_CLAIMED,
    EVENT_WEEK_ROLLED_OVER,
    QUEST_DAYS,
)
from questline.modules.weekly_quest.reward_chest import RewardPolicy
from questline.modules.weekly_quest.service import WeeklyQuestService

from tests.conftest import CORRECT_ANSWER, WRONG_ANSWER, complete_day, event_names

pytestmark = pytest.mark.service

USER = "user-1"


def jan(day_of_month: int) -> datetime:
    """09:00 Manila on the given January 2025 date."""
    return datetime(2025, 1, day_of_month, 1, 0, tzinfo=timezone.utc)


async def complete_week(service, clock, first_monday: int = 6) -> None:
    for offset, day in enumerate(QUEST_DAYS):
        clock.set(jan(first_monday + offset))
        await complete_day(service, USER, day)


async def fail_day(service, day: str) -> None:
    for n in range(1, 4):
        await service.submit_answer(USER, day, f"{day[:3]}-q{n}", WRONG_ANSWER)


async def xp_balance(xp_ledger, user_id: str = USER) -> int:
    async with DatabaseService.get_session() as session:
        return await xp_ledger.get_balance(user_id, session)


# ============================================================================
# STATUS
# ============================================================================


class TestStatus:
    async def test_new_user_starts_this_week(self, service):
        status = await service.get_status(USER)

        assert status["weekStartDate"] == "2025-01-06"
        assert status["currentDay"] == "monday"
        assert status["timezone"] == "Asia/Manila"
        assert status["dutyPasses"] == 0
        assert status["currentStreak"] == 0
        assert status["weekReset"] is False
        assert status["days"]["monday"]["canAccess"] is True
        assert status["days"]["tuesday"]["status"] == "locked"
        assert status["rewardChest"]["state"] == "locked"

    async def test_first_read_mid_week_marks_earlier_days_missed(
        self, service, clock, recorded_events
    ):
        clock.set(jan(8))

        status = await service.get_status(USER)

        assert status["days"]["monday"]["status"] == "missed"
        assert status["days"]["tuesday"]["needsDutyPass"] is True
        assert status["days"]["wednesday"]["isToday"] is True
        assert event_names(recorded_events, USER) == [EVENT_DAY_MISSED, EVENT_DAY_MISSED]

    async def test_status_is_stable_between_reads(self, service, clock, recorded_events):
        clock.set(jan(8))
        first = await service.get_status(USER)
        second = await service.get_status(USER)

        assert first == second
        assert len(recorded_events) == 2

    async def test_missed_day_does_not_break_streak(self, service, clock):
        await complete_day(service, USER, "monday")
        clock.set(jan(8))

        status = await service.get_status(USER)

        assert status["days"]["tuesday"]["status"] == "missed"
        assert status["currentStreak"] == 1

    async def test_get_day_lists_questions(self, service):
        detail = await service.get_day(USER, " Monday ")

        assert detail["day"] == "monday"
        assert len(detail["questions"]) == 5
        assert detail["nextQuestionId"] == "mon-q1"

    async def test_get_day_validation(self, service):
        with pytest.raises(NotFoundError):
            await service.get_day(USER, "sunday")
        with pytest.raises(ValidationError):
            await service.get_day(USER, "   ")
        with pytest.raises(ValidationError):
            await service.get_status("")


# ============================================================================
# ANSWERS & RESET
# ============================================================================


class TestAnswers:
    async def test_correct_answers_complete_the_day(self, service, recorded_events):
        result = await complete_day(service, USER, "monday")

        assert result["isCompleted"] is True
        assert result["score"] == 5
        assert result["nextQuestionId"] is None

        status = await service.get_status(USER)
        assert status["days"]["monday"]["status"] == "completed"
        assert status["weeklyProgress"]["completedDays"] == ["monday"]
        assert status["currentStreak"] == 1

        names = event_names(recorded_events, USER)
        assert names.count(EVENT_ANSWER_SUBMITTED) == 5
        assert EVENT_DAY_COMPLETED in names

    async def test_three_wrong_answers_fail_the_day(self, service):
        first = await service.submit_answer(USER, "monday", "mon-q1", CORRECT_ANSWER)
        lives = [first["livesRemaining"]]
        for n in range(2, 5):
            result = await service.submit_answer(USER, "monday", f"mon-q{n}", WRONG_ANSWER)
            lives.append(result["livesRemaining"])

        assert lives == [3, 2, 1, 0]
        assert result["isFailed"] is True
        assert result["correctAnswer"] == CORRECT_ANSWER

        status = await service.get_status(USER)
        assert status["days"]["monday"]["status"] == "failed"
        assert status["days"]["monday"]["canReset"] is True

    async def test_future_day_is_gated(self, service):
        with pytest.raises(InvalidStateError):
            await service.submit_answer(USER, "friday", "fri-q1", CORRECT_ANSWER)

        status = await service.get_status(USER)
        assert status["days"]["friday"]["score"] == 0

    async def test_out_of_order_answer(self, service):
        with pytest.raises(InvalidStateError):
            await service.submit_answer(USER, "monday", "mon-q3", CORRECT_ANSWER)

    async def test_unknown_question(self, service):
        with pytest.raises(NotFoundError):
            await service.submit_answer(USER, "monday", "nope", CORRECT_ANSWER)

    async def test_input_validation(self, service):
        with pytest.raises(ValidationError):
            await service.submit_answer(USER, "monday", "", CORRECT_ANSWER)
        with pytest.raises(ValidationError):
            await service.submit_answer(USER, "monday", "mon-q1", None)

    async def test_reset_failed_day_and_finish_without_flawless_bonus(
        self, service, clock, xp_ledger
    ):
        await fail_day(service, "monday")

        reset = await service.reset_day(USER, "monday")

        assert reset["status"] == "not_started"
        assert reset["livesRemaining"] == 3
        assert reset["canAccess"] is True

        await complete_day(service, USER, "monday")
        for offset, day in enumerate(QUEST_DAYS[1:], start=1):
            clock.set(jan(6 + offset))
            await complete_day(service, USER, day)

        claim = await service.claim_reward(USER)

        assert claim["rewardXP"] == 250
        assert await xp_balance(xp_ledger) == 250

    async def test_reset_requires_failed_day(self, service):
        with pytest.raises(InvalidStateError):
            await service.reset_day(USER, "monday")


# ============================================================================
# REWARD CHEST
# ============================================================================


class TestRewardClaim:
    async def test_full_week_claim_on_saturday(self, service, clock, xp_ledger, recorded_events):
        await complete_week(service, clock)
        clock.set(jan(11))

        status = await service.get_status(USER)
        assert status["rewardChest"]["isReady"] is True
        assert status["rewardChest"]["potentialXP"] == 300

        claim = await service.claim_reward(USER)

        assert claim["rewardXP"] == 300
        assert claim["totalXP"] == 300
        assert claim["claimedAt"].startswith("2025-01-11")
        assert EVENT_REWARD_CLAIMED in event_names(recorded_events, USER)

        with pytest.raises(AlreadyClaimedError):
            await service.claim_reward(USER)

        assert await xp_balance(xp_ledger) == 300
        status = await service.get_status(USER)
        assert status["rewardChest"]["isClaimed"] is True
        assert status["weeklyProgress"]["rewardXP"] == 300

    async def test_concurrent_claims_grant_once(self, service, clock, xp_ledger):
        await complete_week(service, clock)
        clock.set(jan(11))

        results = await asyncio.gather(
            service.claim_reward(USER),
            service.claim_reward(USER),
            return_exceptions=True,
        )

        granted = [r for r in results if isinstance(r, dict)]
        rejected = [r for r in results if isinstance(r, AlreadyClaimedError)]
        assert len(granted) == 1 and len(rejected) == 1
        assert await xp_balance(xp_ledger) == 300

    async def test_not_ready(self, service, clock):
        await complete_day(service, USER, "monday")

        with pytest.raises(NotReadyError) as exc_info:
            await service.claim_reward(USER)

        assert exc_info.value.details == {"completed": 1, "required": 5}

    async def test_weekend_only_policy(self, service, clock, config_manager):
        config_manager.set_override("weekly_quest.reward.require_weekend", True)
        strict = WeeklyQuestService(
            config_manager,
            service._events,
            get_logger("tests.weekly_quest.strict"),
            service._xp,
            lock_manager=UserLockManager(backend="memory"),
            clock=clock,
        )
        await complete_week(strict, clock)

        with pytest.raises(NotReadyError):
            await strict.claim_reward(USER)

        clock.set(jan(12))
        assert (await strict.claim_reward(USER))["rewardXP"] == 300

    async def test_zero_xp_policy_still_opens_chest(self, service, clock, xp_ledger):
        unpaid = WeeklyQuestService(
            ConfigManager,
            service._events,
            get_logger("tests.weekly_quest.unpaid"),
            service._xp,
            lock_manager=UserLockManager(backend="memory"),
            clock=clock,
            reward_policy=RewardPolicy(base_xp=0, flawless_bonus_xp=0),
        )
        await complete_week(unpaid, clock)
        clock.set(jan(11))

        claim = await unpaid.claim_reward(USER)

        assert claim["rewardXP"] == 0
        assert claim["totalXP"] == 0
        assert await xp_balance(xp_ledger) == 0
        chest = (await unpaid.get_status(USER))["rewardChest"]
        assert chest["isClaimed"] is True
        assert chest["canClaim"] is False
        with pytest.raises(AlreadyClaimedError):
            await unpaid.claim_reward(USER)


# ============================================================================
# DUTY PASSES
# ============================================================================


class TestDutyPass:
    async def test_claim_then_rescue_next_week(self, service, clock, recorded_events):
        clock.set(jan(11))
        claimed = await service.claim_weekly_duty_pass(USER)

        assert claimed == {"dutyPasses": 1, "weekStartDate": "2025-01-06"}
        with pytest.raises(AlreadyClaimedError):
            await service.claim_weekly_duty_pass(USER)

        clock.set(jan(15))
        status = await service.use_duty_pass(USER, "tuesday")

        tuesday = status["days"]["tuesday"]
        assert status["dutyPasses"] == 0
        assert tuesday["status"] == "unlocked_via_pass"
        assert tuesday["unlockedViaPass"] is True
        assert tuesday["canAccess"] is True
        assert status["days"]["monday"]["status"] == "missed"

        with pytest.raises(NotMissedError):
            await service.use_duty_pass(USER, "wednesday")
        with pytest.raises(InsufficientPassesError):
            await service.use_duty_pass(USER, "monday")

        result = await complete_day(service, USER, "tuesday")
        assert result["isCompleted"] is True

        names = event_names(recorded_events, USER)
        assert EVENT_DUTY_PASS_CLAIMED in names
        assert EVENT_DUTY_PASS_USED in names
        assert EVENT_WEEK_ROLLED_OVER in names

    async def test_weekday_claim_rejected(self, service):
        with pytest.raises(InvalidStateError):
            await service.claim_weekly_duty_pass(USER)

        assert (await service.get_status(USER))["dutyPasses"] == 0

    async def test_passes_accumulate_across_weeks(self, service, clock):
        clock.set(jan(11))
        await service.claim_weekly_duty_pass(USER)
        clock.set(jan(18))

        claimed = await service.claim_weekly_duty_pass(USER)

        assert claimed == {"dutyPasses": 2, "weekStartDate": "2025-01-13"}


# ============================================================================
# ROLLOVER & HISTORY
# ============================================================================


class TestRollover:
    async def test_full_week_carries_streak(self, service, clock):
        await complete_week(service, clock)
        clock.set(jan(13))

        status = await service.get_status(USER)

        assert status["weekReset"] is True
        assert status["rollover"]["reason"] == "streak_carried"
        assert status["weekStartDate"] == "2025-01-13"
        assert status["currentStreak"] == 5
        assert status["weeklyProgress"]["completedDays"] == []
        assert all(d["status"] != "completed" for d in status["days"].values())

        again = await service.get_status(USER)
        assert again["weekReset"] is False

    async def test_incomplete_week_resets_streak(self, service, clock):
        await complete_day(service, USER, "monday")
        clock.set(jan(13))

        status = await service.get_status(USER)

        assert status["rollover"]["reason"] == "incomplete_week"
        assert status["currentStreak"] == 0
        assert status["longestStreak"] == 1

    async def test_skipped_weeks_reset_streak(self, service, clock):
        await complete_week(service, clock)
        clock.set(jan(27))

        status = await service.get_status(USER)

        assert status["rollover"]["reason"] == "weeks_skipped"
        assert status["rollover"]["weeksElapsed"] == 3
        assert status["currentStreak"] == 0
        assert status["longestStreak"] == 5

    async def test_mutation_after_rollover_applies_to_new_week(self, service, clock):
        await complete_day(service, USER, "monday")
        clock.set(jan(13))

        result = await service.submit_answer(USER, "monday", "mon-q1", CORRECT_ANSWER)

        assert result["isCorrect"] is True
        status = await service.get_status(USER)
        assert status["weekStartDate"] == "2025-01-13"
        assert status["days"]["monday"]["status"] == "in_progress"

    async def test_history(self, service, clock):
        await complete_week(service, clock)
        clock.set(jan(11))
        await service.claim_reward(USER)
        clock.set(jan(13))
        await complete_day(service, USER, "monday")
        clock.set(jan(20))
        await service.get_status(USER)

        history = await service.get_history(USER)

        assert [h["weekStartDate"] for h in history] == ["2025-01-13", "2025-01-06"]
        assert history[1]["reason"] == "streak_carried"
        assert history[1]["rewardClaimed"] is True
        assert history[1]["rewardXP"] == 300
        assert history[1]["totalQuestsCompleted"] == 5
        assert history[0]["reason"] == "incomplete_week"
        assert history[0]["streakBefore"] == 6
        assert history[0]["streakAfter"] == 0

        assert len(await service.get_history(USER, limit=1)) == 1

    async def test_history_limit_validation(self, service):
        assert await service.get_history(USER) == []
        with pytest.raises(ValidationError):
            await service.get_history(USER, limit=0)
        with pytest.raises(ValidationError):
            await service.get_history(USER, limit=13)


# ============================================================================
# TIMEZONE
# ============================================================================


class TestTimezone:
    async def test_set_timezone(self, service, recorded_events):
        status = await service.set_timezone(USER, "UTC")

        assert status["timezone"] == "UTC"
        assert status["currentDay"] == "monday"
        assert (await service.get_status(USER))["timezone"] == "UTC"
        assert "weekly_quest.timezone_changed" in event_names(recorded_events, USER)

    async def test_timezone_moves_the_current_day(self, service, clock):
        # 01:00 UTC Monday is still Sunday evening in New York
        status = await service.set_timezone(USER, "America/New_York")

        assert status["currentDay"] == "weekend"
        assert status["weekStartDate"] == "2025-01-06"
        assert all(d["status"] != "missed" for d in status["days"].values())

    async def test_invalid_timezone(self, service):
        with pytest.raises(ValidationError):
            await service.set_timezone(USER, "Mars/Olympus_Mons")
        with pytest.raises(ValidationError):
            await service.set_timezone(USER, "")


# ============================================================================
# CONCURRENCY & AUDIT
# ============================================================================


class TestConcurrency:
    async def test_lock_timeout_surfaces_as_concurrent_update(
        self, database, event_bus, xp_ledger, clock
    ):
        locks = UserLockManager(backend="memory", wait_timeout_seconds=0.01)
        contended = WeeklyQuestService(
            ConfigManager,
            event_bus,
            get_logger("tests.weekly_quest.contended"),
            xp_ledger,
            lock_manager=locks,
            clock=clock,
        )

        async with locks.hold(USER):
            with pytest.raises(ConcurrentUpdateError) as exc_info:
                await contended.submit_answer(USER, "monday", "mon-q1", CORRECT_ANSWER)

        assert exc_info.value.reason == "lock_timeout"

    async def test_stale_version_is_retried(self, service, mocker):
        await service.get_status(USER)
        real_flush = service._weeks.flush
        calls = {"count": 0}

        async def flaky_flush(session):
            calls["count"] += 1
            if calls["count"] == 1:
                raise StaleDataError("row version moved")
            return await real_flush(session)

        mocker.patch.object(service._weeks, "flush", side_effect=flaky_flush)

        result = await service.submit_answer(USER, "monday", "mon-q1", CORRECT_ANSWER)

        assert result["score"] == 1
        assert calls["count"] == 2
        status = await service.get_status(USER)
        assert status["days"]["monday"]["score"] == 1

    async def test_same_user_mutations_serialize(self, service):
        await service.get_status(USER)

        results = await asyncio.gather(
            service.submit_answer(USER, "monday", "mon-q1", CORRECT_ANSWER),
            service.submit_answer(USER, "monday", "mon-q1", CORRECT_ANSWER),
            return_exceptions=True,
        )

        assert sum(isinstance(r, dict) for r in results) == 1
        assert sum(isinstance(r, InvalidStateError) for r in results) == 1

    async def test_concurrent_pass_use_never_overspends(self, service, clock):
        clock.set(jan(11))
        await service.claim_weekly_duty_pass(USER)
        clock.set(jan(15))

        results = await asyncio.gather(
            service.use_duty_pass(USER, "monday"),
            service.use_duty_pass(USER, "tuesday"),
            return_exceptions=True,
        )

        assert sum(isinstance(r, dict) for r in results) == 1
        assert sum(isinstance(r, InsufficientPassesError) for r in results) == 1
        status = await service.get_status(USER)
        assert status["dutyPasses"] == 0
        rescued = [d for d in ("monday", "tuesday") if status["days"][d]["unlockedViaPass"]]
        assert len(rescued) == 1

    async def test_concurrent_weekly_pass_claims_grant_once(self, service, clock):
        clock.set(jan(11))

        results = await asyncio.gather(
            service.claim_weekly_duty_pass(USER),
            service.claim_weekly_duty_pass(USER),
            return_exceptions=True,
        )

        assert sum(isinstance(r, dict) for r in results) == 1
        assert sum(isinstance(r, AlreadyClaimedError) for r in results) == 1
        assert (await service.get_status(USER))["dutyPasses"] == 1


class TestAudit:
    async def test_mutations_are_audited_after_commit(self, service, clock):
        received = []

        async def record(payload):
            received.append(payload)

        identifier = global_event_bus.subscribe(
            AuditLogger.EVENT_NAME, record, identifier="test-service-audit"
        )
        try:
            await complete_week(service, clock)
            clock.set(jan(11))
            await service.claim_reward(USER)
        finally:
            global_event_bus.unsubscribe(AuditLogger.EVENT_NAME, identifier)

        claim = received[-1]
        assert claim["transaction_type"] == "weekly_quest.claim_reward"
        assert claim["context"] == "claim_reward"
        assert claim["details"]["reward_xp"] == 300
        assert claim["details"]["flawless"] is True
        assert EVENT_REWARD_CLAIMED in claim["details"]["events"]

    async def test_rejected_mutation_publishes_nothing(self, service, recorded_events):
        await service.get_status(USER)

        with pytest.raises(NotReadyError):
            await service.claim_reward(USER)

        assert recorded_events == []
