"""
Quest content provider.

Reads the five quest days from ConfigManager (`weekly_quest.days.<day>`),
validates them once and serves immutable views. Content editing is out of
scope; operators change the YAML and call `reload()`.

Expected shape::

    weekly_quest:
      days:
        monday:
          title: "Phishing Basics"
          lives: 3
          questions:
            - id: "mon-q1"
              prompt: "..."
              type: "multiple_choice"
              options: ["A", "B"]
              correct_answer: "A"
              explanation: "..."
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple

from questline.core.config.manager import ConfigManager
from questline.core.exceptions import ConfigurationError
from questline.core.logging.logger import get_logger
from questline.modules.shared.exceptions import NotFoundError
from questline.modules.weekly_quest.constants import CONFIG_DAYS, DEFAULT_LIVES, QUEST_DAYS

logger = get_logger(__name__)


@dataclass(frozen=True)
class QuestQuestion:
    id: str
    prompt: str
    correct_answer: str
    type: str = "multiple_choice"
    options: Tuple[str, ...] = ()
    explanation: str = ""

    def to_public_dict(self, number: int) -> Dict[str, Any]:
        """Learner-facing view; never includes the answer."""
        return {
            "id": self.id,
            "number": number,
            "prompt": self.prompt,
            "type": self.type,
            "options": list(self.options),
        }


@dataclass(frozen=True)
class QuestDayContent:
    day: str
    title: str
    lives: int
    questions: Tuple[QuestQuestion, ...]

    @property
    def total_questions(self) -> int:
        return len(self.questions)

    def question_at(self, index: int) -> Optional[QuestQuestion]:
        if 0 <= index < len(self.questions):
            return self.questions[index]
        return None

    def index_of(self, question_id: str) -> Optional[int]:
        for index, question in enumerate(self.questions):
            if question.id == question_id:
                return index
        return None


class QuestContentProvider:
    """
    Validated, cached quest content.

    Args:
        config_manager: Source of the `weekly_quest.days` mapping
    """

    def __init__(self, config_manager: Any = ConfigManager) -> None:
        self._config = config_manager
        self._lock = threading.Lock()
        self._days: Optional[Dict[str, QuestDayContent]] = None

    # ------------------------------------------------------------------ #
    # Loading
    # ------------------------------------------------------------------ #

    def reload(self) -> None:
        with self._lock:
            self._days = None
        self._ensure_loaded()

    def _ensure_loaded(self) -> Dict[str, QuestDayContent]:
        with self._lock:
            if self._days is None:
                raw = self._config.get(CONFIG_DAYS, {}) or {}
                if not isinstance(raw, Mapping):
                    raise ConfigurationError(CONFIG_DAYS, "must be a mapping of weekday to content")
                self._days = {
                    day: self._parse_day(day, raw[day]) for day in QUEST_DAYS if day in raw
                }
                logger.info(
                    "Quest content loaded",
                    extra={
                        "configured_days": sorted(self._days),
                        "question_counts": {
                            d: c.total_questions for d, c in self._days.items()
                        },
                    },
                )
            return self._days

    @staticmethod
    def _parse_day(day: str, raw: Any) -> QuestDayContent:
        key = f"{CONFIG_DAYS}.{day}"
        if not isinstance(raw, Mapping):
            raise ConfigurationError(key, "day content must be a mapping")

        lives = raw.get("lives", DEFAULT_LIVES)
        if isinstance(lives, bool) or not isinstance(lives, int) or lives < 1:
            raise ConfigurationError(f"{key}.lives", "lives must be a positive integer")

        raw_questions = raw.get("questions") or []
        if not isinstance(raw_questions, list) or not raw_questions:
            raise ConfigurationError(f"{key}.questions", "at least one question is required")

        questions = []
        seen: set[str] = set()
        for position, item in enumerate(raw_questions):
            item_key = f"{key}.questions[{position}]"
            if not isinstance(item, Mapping):
                raise ConfigurationError(item_key, "question must be a mapping")

            question_id = str(item.get("id") or "").strip()
            answer = item.get("correct_answer")
            if not question_id or answer is None or not str(answer).strip():
                raise ConfigurationError(item_key, "question needs an id and a correct_answer")
            if question_id in seen:
                raise ConfigurationError(item_key, f"duplicate question id {question_id!r}")
            seen.add(question_id)

            questions.append(
                QuestQuestion(
                    id=question_id,
                    prompt=str(item.get("prompt", "")),
                    correct_answer=str(answer),
                    type=str(item.get("type", "multiple_choice")),
                    options=tuple(str(o) for o in item.get("options") or ()),
                    explanation=str(item.get("explanation", "")),
                )
            )

        return QuestDayContent(
            day=day,
            title=str(raw.get("title", day.capitalize())),
            lives=lives,
            questions=tuple(questions),
        )

    # ------------------------------------------------------------------ #
    # Lookups
    # ------------------------------------------------------------------ #

    def has_day(self, day: str) -> bool:
        return day in self._ensure_loaded()

    def get_day(self, day: str) -> QuestDayContent:
        """
        Raises:
            NotFoundError: If `day` is not a quest day or has no content
        """
        content = self._ensure_loaded().get(day)
        if content is None:
            raise NotFoundError("QuestDay", day)
        return content

    def lives_for(self, day: str) -> int:
        content = self._ensure_loaded().get(day)
        return content.lives if content is not None else DEFAULT_LIVES

    def lives_by_day(self) -> Dict[str, int]:
        return {day: self.lives_for(day) for day in QUEST_DAYS}

    def total_questions(self, day: str) -> int:
        content = self._ensure_loaded().get(day)
        return content.total_questions if content is not None else 0
