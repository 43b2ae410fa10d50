"""
Weekly Quest Service
====================

Purpose
-------
Orchestrates the weekly quest engine: loads a user's quest week, brings it
up to date with the calendar (rollover and miss detection), applies one
operation, persists, then publishes the resulting domain events.

Domain
------
- Status and day views (lock-free reads)
- Answer submission and failed-day reset
- Weekly duty-pass claim and duty-pass use
- Exactly-once weekly reward claim with XP grant
- Week history and per-user timezone

Concurrency
-----------
Every mutation runs as one read-modify-write:
1. acquire the per-user lock (`UserLockManager`)
2. open a transaction and SELECT ... FOR UPDATE the user's row
3. rollover, miss detection, then the operation on the `QuestWeek` aggregate
4. write back (optimistic `version` check), commit, release the lock
5. publish domain events and the audit record

Lost races surface as `ConcurrentUpdateError`, retried by
`DatabaseRetryPolicy` (`weekly_quest.concurrency.*`) before reaching the
caller. The `DutyPassClaim` and `RewardClaim` keys and the XP grant key
back the in-memory checks at the database level.

Reads (`get_status`, `get_day`) use the latest committed snapshot and apply
rollover in memory. When that snapshot is stale they also persist the
transition through the locked path; losing that race still returns the
in-memory view.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
    Tuple,
    TypeVar,
)

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from questline.core.database.retry_policy import DatabaseRetryConfig, DatabaseRetryPolicy
from questline.core.database.service import DatabaseService
from questline.core.exceptions import DatabaseError
from questline.core.infra.audit_logger import AuditLogger
from questline.core.logging.logger import get_logger
from questline.database.models.economy.reward_claim import RewardClaim
from questline.database.models.progression import (
    DutyPassClaim,
    DutyPassUnlock,
    QuestAnswer,
    UserQuestWeek,
    WeeklyProgressArchive,
)
from questline.domain.models.base import DomainEvent
from questline.domain.models.quest_week import QuestWeek
from questline.modules.shared.base_service import BaseService
from questline.modules.shared.exceptions import (
    AlreadyClaimedError,
    ConcurrentUpdateError,
    NotFoundError,
    ValidationError,
)
from questline.modules.shared.user_lock import UserLockManager
from questline.modules.weekly_quest.attempt_engine import AttemptEngine
from questline.modules.weekly_quest.constants import (
    CLAIM_TYPE_DUTY_PASS,
    CLAIM_TYPE_WEEKLY_CHEST,
    CONFIG_CONCURRENCY_PREFIX,
    CONFIG_HISTORY_LIMIT,
    CONFIG_TIMEZONE,
    DEFAULT_TIMEZONE,
    EVENT_TIMEZONE_CHANGED,
    QUEST_DAYS,
    XP_REASON_WEEKLY_CHEST,
    chest_grant_key,
)
from questline.modules.weekly_quest.content import QuestContentProvider
from questline.modules.weekly_quest.ledger import StreakLedger
from questline.modules.weekly_quest.repositories import (
    DutyPassClaimRepository,
    DutyPassUnlockRepository,
    QuestAnswerRepository,
    RewardClaimRepository,
    UserQuestWeekRepository,
    WeeklyArchiveRepository,
)
from questline.modules.weekly_quest.reward_chest import RewardChestController, RewardPolicy
from questline.modules.weekly_quest.rollover import RolloverOutcome, RolloverResolver
from questline.modules.weekly_quest.status_projector import QuestStatusProjector
from questline.modules.weekly_quest.week_calendar import (
    CalendarSnapshot,
    Clock,
    SystemClock,
    resolve,
    resolve_timezone,
)
from questline.modules.xp.ledger_service import XPLedgerService

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from questline.core.config.manager import ConfigManager
    from questline.core.event.bus import EventBus

R = TypeVar("R")


@dataclass
class MutationContext:
    """Everything an operation may touch inside the locked transaction."""

    session: AsyncSession
    week: QuestWeek
    calendar: CalendarSnapshot
    now: datetime
    rollover: Optional[RolloverOutcome]
    audit_details: Dict[str, Any] = field(default_factory=dict)


MutationAction = Callable[[MutationContext], Awaitable[R]]


class WeeklyQuestService(BaseService):
    """
    Service for the weekly quest engine.

    Public Methods
    --------------
    - get_status() -> Full status projection
    - get_day() -> One day with its (answer-free) questions
    - submit_answer() -> Grade one answer
    - reset_day() -> Restart a failed day
    - claim_weekly_duty_pass() -> Weekend duty-pass claim
    - use_duty_pass() -> Rescue a missed day
    - claim_reward() -> Open the weekly chest
    - get_history() -> Archived weeks
    - set_timezone() -> Change the user's week cycle timezone
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        xp_ledger: XPLedgerService,
        *,
        lock_manager: Optional[UserLockManager] = None,
        content: Optional[QuestContentProvider] = None,
        clock: Optional[Clock] = None,
        reward_policy: Optional[RewardPolicy] = None,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)

        self._xp = xp_ledger
        self._locks = lock_manager or UserLockManager()
        self._clock: Clock = clock or SystemClock()
        self._content = content or QuestContentProvider(config_manager)

        self._ledger = StreakLedger()
        self._engine = AttemptEngine(self._content, self._ledger)
        self._rollover = RolloverResolver(self._content)
        self._chest = RewardChestController(reward_policy or RewardPolicy.from_config(config_manager))
        self._projector = QuestStatusProjector(self._content, self._ledger, self._chest)

        self._retry = DatabaseRetryPolicy(
            DatabaseRetryConfig.from_config(
                CONFIG_CONCURRENCY_PREFIX,
                retriable_exceptions=(ConcurrentUpdateError,),
            )
        )

        self._weeks = UserQuestWeekRepository(
            model_class=UserQuestWeek,
            logger=get_logger(f"{__name__}.UserQuestWeekRepository"),
        )
        self._archive = WeeklyArchiveRepository(
            model_class=WeeklyProgressArchive,
            logger=get_logger(f"{__name__}.WeeklyArchiveRepository"),
        )
        self._pass_claims = DutyPassClaimRepository(
            model_class=DutyPassClaim,
            logger=get_logger(f"{__name__}.DutyPassClaimRepository"),
        )
        self._pass_unlocks = DutyPassUnlockRepository(
            model_class=DutyPassUnlock,
            logger=get_logger(f"{__name__}.DutyPassUnlockRepository"),
        )
        self._answers = QuestAnswerRepository(
            model_class=QuestAnswer,
            logger=get_logger(f"{__name__}.QuestAnswerRepository"),
        )
        self._reward_claims = RewardClaimRepository(
            model_class=RewardClaim,
            logger=get_logger(f"{__name__}.RewardClaimRepository"),
        )

    @property
    def content(self) -> QuestContentProvider:
        return self._content

    # ========================================================================
    # PUBLIC API - Read Operations
    # ========================================================================

    async def get_status(self, user_id: str) -> Dict[str, Any]:
        """
        Full status projection for the user's current week.

        Returns:
            Dict with weekStartDate, currentDay, isWeekend, timezone, days,
            dutyPasses, currentStreak, longestStreak, lastDutyPassClaimWeek,
            canClaimDutyPass, weeklyProgress, rewardChest and weekReset.
        """
        user_id = self.validate_user_id(user_id)
        self.log_operation("get_status", user_id=user_id)

        return await self._read_view(
            user_id,
            "get_status",
            lambda week, calendar, rollover: self._projector.project(week, calendar, rollover),
        )

    async def get_day(self, user_id: str, day: str) -> Dict[str, Any]:
        """
        One day's view with its questions (answers never included).

        Raises:
            NotFoundError: Unknown day
        """
        user_id = self.validate_user_id(user_id)
        day = self._normalize_day(day)
        self.log_operation("get_day", user_id=user_id, day=day)

        return await self._read_view(
            user_id,
            "get_day",
            lambda week, calendar, rollover: self._projector.project_day_detail(
                week, calendar, day
            ),
        )

    async def get_history(self, user_id: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Archived weeks, newest first."""
        user_id = self.validate_user_id(user_id)
        max_weeks = self.get_config_int(CONFIG_HISTORY_LIMIT, 12, min_val=1)
        if limit is None:
            limit = max_weeks
        elif isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= max_weeks:
            raise ValidationError("limit", f"limit must be between 1 and {max_weeks}")

        self.log_operation("get_history", user_id=user_id, limit=limit)

        try:
            async with DatabaseService.get_session() as session:
                rows = await self._archive.list_for_user(session, user_id, limit)
        except (OperationalError, DBAPIError) as exc:
            self.log_error("get_history", exc, user_id=user_id)
            raise DatabaseError("get_history", exc) from exc

        return [
            {
                "weekStartDate": row.week_start_date.isoformat(),
                "completedDays": list(row.completed_days or []),
                "totalQuestsCompleted": row.total_quests_completed,
                "rewardClaimed": row.reward_claimed,
                "rewardXP": row.reward_xp,
                "claimedAt": row.claimed_at.isoformat() if row.claimed_at else None,
                "streakBefore": row.streak_before,
                "streakAfter": row.streak_after,
                "weeksElapsed": row.weeks_elapsed,
                "reason": row.reason,
            }
            for row in rows
        ]

    # ========================================================================
    # PUBLIC API - Write Operations
    # ========================================================================

    async def submit_answer(
        self, user_id: str, day: str, question_id: str, selected_answer: str
    ) -> Dict[str, Any]:
        """
        Grade one answer for `day`.

        Raises:
            NotFoundError: Unknown day or question
            InvalidStateError: Day not playable or question out of order
            ConcurrentUpdateError: Lost the race for the user's state
        """
        user_id = self.validate_user_id(user_id)
        day = self._normalize_day(day)
        question_id = self.validate_non_empty_str(question_id, "question_id", max_length=64)
        if not isinstance(selected_answer, str) or len(selected_answer) > 512:
            raise ValidationError("selected_answer", "must be a string of at most 512 characters")

        self.log_operation("submit_answer", user_id=user_id, day=day, question_id=question_id)

        async def action(ctx: MutationContext) -> Dict[str, Any]:
            result = self._engine.submit_answer(
                ctx.week, ctx.calendar, day, question_id, selected_answer, ctx.now
            )
            self._answers.add(
                ctx.session,
                QuestAnswer(
                    user_id=user_id,
                    week_start_date=ctx.week.week_start,
                    day=day,
                    question_id=question_id,
                    selected_answer=selected_answer,
                    is_correct=result.is_correct,
                    answered_at=ctx.now,
                ),
            )
            ctx.audit_details.update(
                {
                    "day": day,
                    "question_id": question_id,
                    "is_correct": result.is_correct,
                    "lives_remaining": result.lives_remaining,
                    "is_completed": result.is_completed,
                    "is_failed": result.is_failed,
                }
            )
            return result.to_view()

        return await self._mutate(user_id, "submit_answer", action)

    async def reset_day(self, user_id: str, day: str) -> Dict[str, Any]:
        """
        Restart a failed day with full lives.

        Raises:
            NotFoundError: Unknown day
            InvalidStateError: The day is not failed
        """
        user_id = self.validate_user_id(user_id)
        day = self._normalize_day(day)
        self.log_operation("reset_day", user_id=user_id, day=day)

        async def action(ctx: MutationContext) -> Dict[str, Any]:
            state = self._engine.reset_day(ctx.week, day)
            ctx.audit_details.update({"day": day, "status": state.status.value})
            return self._projector.project_day(ctx.week, ctx.calendar, day)

        return await self._mutate(user_id, "reset_day", action)

    async def claim_weekly_duty_pass(self, user_id: str) -> Dict[str, Any]:
        """
        Claim the week's duty pass (weekend only, once per week).

        Raises:
            InvalidStateError: Not the weekend
            AlreadyClaimedError: Already claimed this week
        """
        user_id = self.validate_user_id(user_id)
        self.log_operation("claim_weekly_duty_pass", user_id=user_id)

        async def action(ctx: MutationContext) -> Dict[str, Any]:
            week_start = ctx.week.week_start
            duty_passes = self._ledger.claim_weekly_duty_pass(ctx.week, ctx.calendar)

            if await self._pass_claims.exists_for_week(ctx.session, user_id, week_start):
                raise AlreadyClaimedError(CLAIM_TYPE_DUTY_PASS, week_start.isoformat())

            self._pass_claims.add(
                ctx.session,
                DutyPassClaim(user_id=user_id, week_start_date=week_start, claimed_at=ctx.now),
            )
            await self._flush_claim(ctx.session, CLAIM_TYPE_DUTY_PASS, week_start)

            ctx.audit_details.update(
                {"week_start": week_start.isoformat(), "duty_passes": duty_passes}
            )
            return {"dutyPasses": duty_passes, "weekStartDate": week_start.isoformat()}

        return await self._mutate(user_id, "claim_weekly_duty_pass", action)

    async def use_duty_pass(self, user_id: str, day: str) -> Dict[str, Any]:
        """
        Spend one duty pass to reopen a missed day.

        Raises:
            NotFoundError: Unknown day
            NotMissedError: The day is not missed
            InsufficientPassesError: No passes left
        """
        user_id = self.validate_user_id(user_id)
        day = self._normalize_day(day)
        self.log_operation("use_duty_pass", user_id=user_id, day=day)

        async def action(ctx: MutationContext) -> Dict[str, Any]:
            self._ledger.use_duty_pass(ctx.week, day, self._content.lives_for(day))
            self._pass_unlocks.add(
                ctx.session,
                DutyPassUnlock(
                    user_id=user_id,
                    week_start_date=ctx.week.week_start,
                    day=day,
                    unlocked_at=ctx.now,
                ),
            )
            ctx.audit_details.update({"day": day, "duty_passes": ctx.week.duty_passes})
            return self._projector.project(ctx.week, ctx.calendar, ctx.rollover)

        return await self._mutate(user_id, "use_duty_pass", action)

    async def claim_reward(self, user_id: str) -> Dict[str, Any]:
        """
        Open the weekly chest and grant its XP exactly once.

        Returns:
            {"rewardXP", "totalXP", "claimedAt"}

        Raises:
            AlreadyClaimedError: Chest already opened this week
            NotReadyError: Fewer than five days completed (or weekday while
                the weekend-only policy is enabled)
        """
        user_id = self.validate_user_id(user_id)
        self.log_operation("claim_reward", user_id=user_id)

        async def action(ctx: MutationContext) -> Dict[str, Any]:
            week_start = ctx.week.week_start
            claim_key = week_start.isoformat()
            reward_xp = self._chest.claim(ctx.week, ctx.calendar, ctx.now)

            if await self._reward_claims.exists_for(
                ctx.session, user_id, CLAIM_TYPE_WEEKLY_CHEST, claim_key
            ):
                raise AlreadyClaimedError(CLAIM_TYPE_WEEKLY_CHEST, claim_key)

            self._reward_claims.add(
                ctx.session,
                RewardClaim(
                    user_id=user_id,
                    claim_type=CLAIM_TYPE_WEEKLY_CHEST,
                    claim_key=claim_key,
                    reward_xp=reward_xp,
                    claimed_at=ctx.now,
                ),
            )
            await self._flush_claim(ctx.session, CLAIM_TYPE_WEEKLY_CHEST, week_start)

            # A zero-XP policy still opens the chest; the ledger only takes positive grants
            if reward_xp > 0:
                grant = await self._xp.grant_xp(
                    user_id,
                    reward_xp,
                    XP_REASON_WEEKLY_CHEST,
                    chest_grant_key(user_id, claim_key),
                    ctx.session,
                )
                total_xp = grant.total_xp
            else:
                total_xp = await self._xp.get_balance(user_id, ctx.session)

            ctx.audit_details.update(
                {
                    "week_start": claim_key,
                    "reward_xp": reward_xp,
                    "total_xp": total_xp,
                    "flawless": not ctx.week.has_failed_day,
                }
            )
            return {
                "rewardXP": reward_xp,
                "totalXP": total_xp,
                "claimedAt": ctx.now.isoformat(),
            }

        return await self._mutate(user_id, "claim_reward", action)

    async def set_timezone(self, user_id: str, timezone_name: str) -> Dict[str, Any]:
        """
        Change the timezone the user's week cycle is computed in.

        Raises:
            ValidationError: Unknown IANA timezone name
        """
        user_id = self.validate_user_id(user_id)
        timezone_name = str(resolve_timezone(timezone_name))
        self.log_operation("set_timezone", user_id=user_id, timezone=timezone_name)

        async def action(ctx: MutationContext) -> Dict[str, Any]:
            ctx.week.add_domain_event(
                EVENT_TIMEZONE_CHANGED,
                {"user_id": user_id, "timezone": timezone_name},
            )
            ctx.audit_details["timezone"] = timezone_name
            return self._projector.project(ctx.week, ctx.calendar, ctx.rollover)

        return await self._mutate(user_id, "set_timezone", action, timezone_name=timezone_name)

    # ========================================================================
    # INTERNALS - Read path
    # ========================================================================

    async def _read_view(
        self,
        user_id: str,
        operation: str,
        project: Callable[[QuestWeek, CalendarSnapshot, Optional[RolloverOutcome]], R],
    ) -> R:
        now = self._clock.now()
        try:
            async with DatabaseService.get_session() as session:
                row = await self._weeks.get_for_user(session, user_id)
                week = (
                    QuestWeek.from_db(row, self._content.lives_by_day())
                    if row is not None
                    else None
                )
        except (OperationalError, DBAPIError) as exc:
            self.log_error(operation, exc, user_id=user_id)
            raise DatabaseError(operation, exc) from exc

        if week is None:
            week = self._new_week(user_id, now)

        calendar, rollover, missed = self._catch_up(week, now)
        if row is not None and rollover is None and not missed:
            return project(week, calendar, None)

        async def action(ctx: MutationContext) -> R:
            return project(ctx.week, ctx.calendar, ctx.rollover or rollover)

        try:
            return await self._mutate(user_id, operation, action)
        except ConcurrentUpdateError as exc:
            self.log.warning(
                "Persisting catch-up lost a race; serving in-memory view",
                extra={"user_id": user_id, "operation": operation, "reason": exc.reason},
            )
            return project(week, calendar, rollover)

    # ========================================================================
    # INTERNALS - Write path
    # ========================================================================

    async def _mutate(
        self,
        user_id: str,
        operation: str,
        action: MutationAction[R],
        *,
        timezone_name: Optional[str] = None,
    ) -> R:
        async def attempt() -> R:
            return await self._run_locked(user_id, operation, action, timezone_name)

        return await self._retry.execute(
            attempt,
            operation_name=f"weekly_quest.{operation}",
            context={"user_id": user_id},
        )

    async def _run_locked(
        self,
        user_id: str,
        operation: str,
        action: MutationAction[R],
        timezone_name: Optional[str],
    ) -> R:
        async with self._locks.hold(user_id, operation=operation):
            now = self._clock.now()
            try:
                async with DatabaseService.get_transaction() as session:
                    row = await self._load_row_for_update(session, user_id, now)
                    week = QuestWeek.from_db(row, self._content.lives_by_day())
                    if timezone_name is not None:
                        week.timezone_name = timezone_name

                    calendar, rollover, _ = self._catch_up(week, now)
                    if rollover is not None:
                        self._archive.add(session, self._archive_row(rollover, now))

                    ctx = MutationContext(
                        session=session,
                        week=week,
                        calendar=calendar,
                        now=now,
                        rollover=rollover,
                    )
                    result = await action(ctx)

                    for column, value in week.to_db_updates().items():
                        setattr(row, column, value)
                    await self._weeks.flush(session)

                    events = week.clear_domain_events()

            except StaleDataError as exc:
                self.log.warning(
                    "Stale quest week version; concurrent writer won",
                    extra={"user_id": user_id, "operation": operation},
                )
                raise ConcurrentUpdateError(user_id, reason="stale_version") from exc
            except (OperationalError, DBAPIError) as exc:
                self.log_error(operation, exc, user_id=user_id)
                raise DatabaseError(operation, exc) from exc

        await self._publish(user_id, operation, events, ctx)
        return result

    async def _load_row_for_update(
        self, session: AsyncSession, user_id: str, now: datetime
    ) -> UserQuestWeek:
        row = await self._weeks.get_for_user(session, user_id, for_update=True)
        if row is not None:
            return row

        week = self._new_week(user_id, now)
        row = self._weeks.add(session, UserQuestWeek(user_id=user_id, **week.to_db_updates()))
        try:
            await self._weeks.flush(session)
        except IntegrityError as exc:
            # Another process created the row between our read and insert
            raise ConcurrentUpdateError(user_id, reason="row_created_concurrently") from exc

        self.log.info("Quest week created", extra={"user_id": user_id, "week_start": str(week.week_start)})
        return row

    async def _flush_claim(self, session: AsyncSession, claim_type: str, week_start: date) -> None:
        try:
            await session.flush()
        except IntegrityError as exc:
            raise AlreadyClaimedError(claim_type, week_start.isoformat()) from exc

    async def _publish(
        self,
        user_id: str,
        operation: str,
        events: List[DomainEvent],
        ctx: MutationContext,
    ) -> None:
        for event in events:
            await self.emit_event(event.event_name, event.payload)

        if not events and not ctx.audit_details:
            return

        await AuditLogger.log(
            user_id=user_id,
            transaction_type=f"weekly_quest.{operation}",
            details={
                **ctx.audit_details,
                "week_start": ctx.week.week_start.isoformat(),
                "events": [event.event_name for event in events],
                "current_streak": ctx.week.current_streak,
                "duty_passes": ctx.week.duty_passes,
            },
            context=operation,
        )

    # ========================================================================
    # INTERNALS - Helpers
    # ========================================================================

    def _catch_up(
        self, week: QuestWeek, now: datetime
    ) -> Tuple[CalendarSnapshot, Optional[RolloverOutcome], List[str]]:
        """Rollover then miss detection; both are no-ops on an up-to-date week."""
        calendar = resolve(now, week.timezone_name, week.week_start)
        rollover = self._rollover.apply(week, calendar)
        missed = self._ledger.detect_missed_days(week, calendar)
        return calendar, rollover, missed

    def _new_week(self, user_id: str, now: datetime) -> QuestWeek:
        timezone_name = self.get_config(CONFIG_TIMEZONE, DEFAULT_TIMEZONE)
        calendar = resolve(now, timezone_name)
        return QuestWeek.new(
            user_id,
            calendar.week_start,
            self._content.lives_by_day(),
            timezone_name=str(timezone_name),
        )

    @staticmethod
    def _archive_row(outcome: RolloverOutcome, now: datetime) -> WeeklyProgressArchive:
        return WeeklyProgressArchive(
            user_id=outcome.user_id,
            week_start_date=outcome.previous_week_start,
            completed_days=list(outcome.completed_days),
            total_quests_completed=len(outcome.completed_days),
            reward_claimed=outcome.reward_claimed,
            reward_xp=outcome.reward_xp,
            claimed_at=outcome.claimed_at,
            streak_before=outcome.streak_before,
            streak_after=outcome.streak_after,
            weeks_elapsed=outcome.weeks_elapsed,
            reason=outcome.reason,
            archived_at=now,
        )

    @staticmethod
    def _normalize_day(day: Any) -> str:
        if not isinstance(day, str) or not day.strip():
            raise ValidationError("day", "day must be a weekday name")
        normalized = day.strip().lower()
        if normalized not in QUEST_DAYS:
            raise NotFoundError("QuestDay", normalized)
        return normalized
