import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from src.constants import Category, REFLECTION_KEYS


def new_id() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def drop_blank(entries: Iterable[str]) -> List[str]:
    """Removes empty and whitespace-only entries, keeping the rest in order."""
    return [entry for entry in entries if entry and entry.strip()]


class Achievement(BaseModel):
    """A single self-reported accomplishment tagged with a category."""
    id: str = Field(default_factory=new_id)
    category: Category
    description: str

    @field_validator("description")
    @classmethod
    def description_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Achievement description cannot be empty.")
        return value


class ReflectionAnswers(BaseModel):
    """
    Answers to the eleven reflection questions asked about each top achievement.

    Persisted and exchanged with the camelCase keys listed in REFLECTION_KEYS;
    attribute access uses the snake_case field names.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    what_was_it: str = ""
    why_you: str = ""
    thoughts_and_feelings: str = ""
    how_prepared: str = ""
    how_worked: str = ""
    feelings_during: str = ""
    handled_resistance: str = ""
    others_involved: str = ""
    result: str = ""
    reward: str = ""
    feelings_after: str = ""

    @classmethod
    def field_for_key(cls, key: str) -> str:
        """Maps a camelCase reflection key to its attribute name."""
        if key not in REFLECTION_KEYS:
            raise KeyError(f"Unknown reflection question key: '{key}'")
        for field_name, info in cls.model_fields.items():
            if info.alias == key:
                return field_name
        raise KeyError(f"Unknown reflection question key: '{key}'")

    def set_answer(self, key: str, value: str) -> None:
        setattr(self, self.field_for_key(key), value)

    def get_answer(self, key: str) -> str:
        return getattr(self, self.field_for_key(key))

    def as_ordered_dict(self) -> Dict[str, str]:
        return {key: self.get_answer(key) for key in REFLECTION_KEYS}


class TopAchievement(BaseModel):
    id: str  # references Achievement.id
    title: str
    answers: ReflectionAnswers = Field(default_factory=ReflectionAnswers)

    @classmethod
    def from_achievement(cls, achievement: Achievement) -> "TopAchievement":
        return cls(id=achievement.id, title=achievement.description)


class Profile(BaseModel):
    """A completed reflection: achievements, top three, denominators and pattern."""
    id: str = Field(default_factory=new_id)
    name: str
    group_number: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    achievements: List[Achievement] = Field(default_factory=list)
    top_three: List[TopAchievement] = Field(default_factory=list)
    common_denominators: List[str] = Field(default_factory=list)
    performance_pattern: List[str] = Field(default_factory=list)

    @field_validator("achievements", "top_three", "common_denominators", "performance_pattern", mode="before")
    @classmethod
    def missing_list_is_empty(cls, value: Any) -> Any:
        # Older rows may carry NULL for any of the list columns.
        return [] if value is None else value

    @field_validator("group_number", mode="before")
    @classmethod
    def blank_group_is_none(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    @field_validator("created_at")
    @classmethod
    def created_at_is_utc(cls, value: datetime) -> datetime:
        # SQLite hands timestamps back without tzinfo; they are stored as UTC.
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def categories(self) -> set:
        return {achievement.category for achievement in self.achievements}

    def summary_text(self) -> str:
        """Denominators and pattern joined into one string, as used by match scoring."""
        return " ".join(self.common_denominators + self.performance_pattern)

    def to_record(self) -> Dict[str, Any]:
        """Backend-agnostic persisted shape (snake_case fields, ISO timestamp)."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Profile":
        return cls.model_validate(record)


class ProfileWithMeta(Profile):
    """Browse view model: a profile plus the viewer-relative fields."""
    match_score: Optional[int] = None
    is_own_profile: bool = False

    @classmethod
    def from_profile(cls, profile: Profile, match_score: Optional[int] = None, is_own_profile: bool = False) -> "ProfileWithMeta":
        return cls(**dict(profile), match_score=match_score, is_own_profile=is_own_profile)
