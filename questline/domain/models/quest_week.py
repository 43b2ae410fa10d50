"""
QuestWeek Domain Model for Questline.

Purpose
-------
Rich domain model of one user's current quest week: the five day states,
the streak counters, the duty-pass balance and the weekly progress. This is
the Quest Day Store; the weekly quest components (attempt engine, ledger,
rollover, reward chest) change it only through the methods below.

This is separate from the database model (`UserQuestWeek`), which is an
anemic schema. Services convert with `from_db()` / `to_db_updates()`.

Responsibilities
----------------
- Hold the day states and ledger counters of the active week
- Keep `total_quests_completed == len(completed_days)` by construction
- Keep `longest_streak >= current_streak` and counters non-negative
- Record domain events for the service to publish after commit

Non-Responsibilities
--------------------
- Calendar arithmetic (calendar resolver)
- Grading and access rules (attempt engine)
- Persistence and locking (service layer)

Usage Example
-------------
>>> week = QuestWeek.from_db(row)
>>> week.record_completion("monday", now)
>>> row_updates = week.to_db_updates()
>>> for event in week.clear_domain_events():
...     await event_bus.publish(event.event_name, event.payload)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional

from questline.domain.models.base import (
    AggregateRoot,
    DomainValidationError,
    validate_non_negative,
    validate_not_empty,
)

if TYPE_CHECKING:
    from questline.database.models.progression.quest_week import UserQuestWeek


QUEST_DAYS: tuple[str, ...] = ("monday", "tuesday", "wednesday", "thursday", "friday")
DEFAULT_TIMEZONE = "Asia/Manila"
DEFAULT_LIVES = 3


class DayStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    MISSED = "missed"
    UNLOCKED_VIA_PASS = "unlocked_via_pass"


def _parse_datetime(value: Any) -> Optional[datetime]:
    """Stored timestamps are ISO strings in JSON and may come back naive from SQLite."""
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


# ============================================================================
# DAY STATE
# ============================================================================


@dataclass
class QuestDayState:
    """
    Attempt state of one weekday within the active week.

    Attributes
    ----------
    status : DayStatus
        Explicit lifecycle state of the day
    lives_remaining : int
        Lives left in the current attempt
    current_question_index : int
        Zero-based index of the next question to answer
    score : int
        Correct answers in the current attempt
    via_pass : bool
        The day was rescued by a duty pass this week
    ever_failed : bool
        The day entered `failed` at least once this week
    """

    status: DayStatus = DayStatus.NOT_STARTED
    lives_remaining: int = DEFAULT_LIVES
    current_question_index: int = 0
    score: int = 0
    via_pass: bool = False
    ever_failed: bool = False
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        validate_non_negative(self.lives_remaining, "lives_remaining")
        validate_non_negative(self.current_question_index, "current_question_index")
        validate_non_negative(self.score, "score")

    @property
    def is_playable(self) -> bool:
        return self.status in (
            DayStatus.NOT_STARTED,
            DayStatus.IN_PROGRESS,
            DayStatus.UNLOCKED_VIA_PASS,
        )

    def reset_attempt(self, lives: int) -> None:
        """Restore a fresh attempt; status is left to the caller."""
        self.lives_remaining = lives
        self.current_question_index = 0
        self.score = 0
        self.started_at = None
        self.completed_at = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "lives_remaining": self.lives_remaining,
            "current_question_index": self.current_question_index,
            "score": self.score,
            "via_pass": self.via_pass,
            "ever_failed": self.ever_failed,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> QuestDayState:
        try:
            status = DayStatus(data.get("status", DayStatus.NOT_STARTED.value))
        except ValueError as exc:
            raise DomainValidationError(
                f"Unknown day status {data.get('status')!r}", field="status"
            ) from exc

        return cls(
            status=status,
            lives_remaining=int(data.get("lives_remaining", DEFAULT_LIVES)),
            current_question_index=int(data.get("current_question_index", 0)),
            score=int(data.get("score", 0)),
            via_pass=bool(data.get("via_pass", False)),
            ever_failed=bool(data.get("ever_failed", False)),
            started_at=_parse_datetime(data.get("started_at")),
            completed_at=_parse_datetime(data.get("completed_at")),
        )


# ============================================================================
# WEEKLY PROGRESS
# ============================================================================


@dataclass
class WeeklyProgress:
    """Completion and reward state of the active week."""

    completed_days: List[str] = field(default_factory=list)
    reward_claimed: bool = False
    reward_xp: int = 0
    claimed_at: Optional[datetime] = None

    @property
    def total_quests_completed(self) -> int:
        return len(self.completed_days)

    def to_view(self) -> Dict[str, Any]:
        return {
            "completedDays": list(self.completed_days),
            "totalQuestsCompleted": self.total_quests_completed,
            "rewardClaimed": self.reward_claimed,
            "rewardXP": self.reward_xp,
            "claimedAt": self.claimed_at.isoformat() if self.claimed_at else None,
        }


# ============================================================================
# AGGREGATE
# ============================================================================


class QuestWeek(AggregateRoot):
    """
    Aggregate root for a user's weekly quest state.

    All counters are mutated through methods so the ledger invariants hold
    after every operation.
    """

    def __init__(
        self,
        user_id: str,
        week_start: date,
        days: Dict[str, QuestDayState],
        *,
        current_streak: int = 0,
        longest_streak: int = 0,
        duty_passes: int = 0,
        last_duty_pass_claim_week: Optional[date] = None,
        progress: Optional[WeeklyProgress] = None,
        timezone_name: str = DEFAULT_TIMEZONE,
        version: Optional[int] = None,
    ) -> None:
        validate_not_empty(user_id, "user_id")
        super().__init__(user_id)

        missing = [d for d in QUEST_DAYS if d not in days]
        if missing:
            raise DomainValidationError(f"Missing day states: {missing}", field="days")

        validate_non_negative(current_streak, "current_streak")
        validate_non_negative(longest_streak, "longest_streak")
        validate_non_negative(duty_passes, "duty_passes")

        self.week_start: date = week_start
        self._days: Dict[str, QuestDayState] = {d: days[d] for d in QUEST_DAYS}
        self._current_streak = current_streak
        self._longest_streak = max(longest_streak, current_streak)
        self._duty_passes = duty_passes
        self.last_duty_pass_claim_week = last_duty_pass_claim_week
        self.progress = progress or WeeklyProgress()
        self.timezone_name = timezone_name
        self.version = version

    # ========================================================================
    # PROPERTIES
    # ========================================================================

    @property
    def user_id(self) -> str:
        return self.id

    @property
    def current_streak(self) -> int:
        return self._current_streak

    @property
    def longest_streak(self) -> int:
        return self._longest_streak

    @property
    def duty_passes(self) -> int:
        return self._duty_passes

    @property
    def days(self) -> Dict[str, QuestDayState]:
        return dict(self._days)

    def day(self, name: str) -> QuestDayState:
        return self._days[name]

    @property
    def has_failed_day(self) -> bool:
        return any(state.ever_failed for state in self._days.values())

    # ========================================================================
    # LEDGER MUTATIONS
    # ========================================================================

    def record_completion(self, day: str, completed_at: datetime) -> bool:
        """
        Add `day` to the completed set and advance the streak.

        Returns False (and changes nothing) when the day was already counted
        this week.
        """
        if day in self.progress.completed_days:
            return False

        self.progress.completed_days = [
            d for d in QUEST_DAYS if d in self.progress.completed_days or d == day
        ]
        self._current_streak += 1
        self._longest_streak = max(self._longest_streak, self._current_streak)
        self._days[day].completed_at = completed_at
        return True

    def break_streak(self) -> None:
        self._current_streak = 0

    def add_duty_pass(self, claim_week: date) -> None:
        self._duty_passes += 1
        self.last_duty_pass_claim_week = claim_week

    def spend_duty_pass(self) -> None:
        if self._duty_passes <= 0:
            raise DomainValidationError("No duty passes to spend", field="duty_passes")
        self._duty_passes -= 1

    def mark_reward_claimed(self, reward_xp: int, claimed_at: datetime) -> None:
        validate_non_negative(reward_xp, "reward_xp")
        self.progress.reward_claimed = True
        self.progress.reward_xp = reward_xp
        self.progress.claimed_at = claimed_at

    def start_week(self, week_start: date, lives_by_day: Mapping[str, int]) -> None:
        """Move to a new week: fresh day states and progress, ledger kept."""
        self.week_start = week_start
        self._days = {
            d: QuestDayState(lives_remaining=lives_by_day.get(d, DEFAULT_LIVES))
            for d in QUEST_DAYS
        }
        self.progress = WeeklyProgress()

    # ========================================================================
    # FACTORY METHODS
    # ========================================================================

    @classmethod
    def new(
        cls,
        user_id: str,
        week_start: date,
        lives_by_day: Mapping[str, int],
        timezone_name: str = DEFAULT_TIMEZONE,
    ) -> QuestWeek:
        days = {
            d: QuestDayState(lives_remaining=lives_by_day.get(d, DEFAULT_LIVES))
            for d in QUEST_DAYS
        }
        return cls(user_id, week_start, days, timezone_name=timezone_name)

    @classmethod
    def from_db(
        cls,
        row: UserQuestWeek,
        lives_by_day: Optional[Mapping[str, int]] = None,
    ) -> QuestWeek:
        """
        Build the aggregate from its database row.

        Days absent from the stored JSON (rows written before a day had
        content) start fresh with the configured lives.
        """
        lives_by_day = lives_by_day or {}
        stored: Mapping[str, Any] = row.day_states or {}
        days = {
            d: (
                QuestDayState.from_dict(stored[d])
                if d in stored
                else QuestDayState(lives_remaining=lives_by_day.get(d, DEFAULT_LIVES))
            )
            for d in QUEST_DAYS
        }

        progress = WeeklyProgress(
            completed_days=[d for d in QUEST_DAYS if d in (row.completed_days or [])],
            reward_claimed=bool(row.reward_claimed),
            reward_xp=row.reward_xp or 0,
            claimed_at=_parse_datetime(row.claimed_at),
        )

        return cls(
            row.user_id,
            row.week_start_date,
            days,
            current_streak=row.current_streak or 0,
            longest_streak=row.longest_streak or 0,
            duty_passes=row.duty_passes or 0,
            last_duty_pass_claim_week=row.last_duty_pass_claim_week,
            progress=progress,
            timezone_name=row.timezone or DEFAULT_TIMEZONE,
            version=row.version,
        )

    def to_db_updates(self) -> Dict[str, Any]:
        """Column values for `UserQuestWeek` (everything except the key and version)."""
        return {
            "week_start_date": self.week_start,
            "timezone": self.timezone_name,
            "day_states": {d: s.to_dict() for d, s in self._days.items()},
            "current_streak": self._current_streak,
            "longest_streak": self._longest_streak,
            "duty_passes": self._duty_passes,
            "last_duty_pass_claim_week": self.last_duty_pass_claim_week,
            "completed_days": list(self.progress.completed_days),
            "reward_claimed": self.progress.reward_claimed,
            "reward_xp": self.progress.reward_xp,
            "claimed_at": self.progress.claimed_at,
        }
