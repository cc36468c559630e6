from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from src.constants import Category


class Step(str, Enum):
    WELCOME = "welcome"
    NAME = "name"
    ACHIEVEMENTS = "achievements"
    TOP_THREE = "top_three"
    DENOMINATORS = "denominators"
    PATTERN = "pattern"
    COMPLETE = "complete"
    BROWSE = "browse"


class TopThreePhase(str, Enum):
    SELECTION = "selection"
    REFLECTION = "reflection"


# Custom Error Classes
class WizardError(ValueError):
    """Base exception for wizard operations."""
    pass


class TransitionBlocked(WizardError):
    """The current step's precondition for moving forward is not met."""
    pass


class InvalidWizardInput(WizardError):
    """An operation was used in the wrong step or with unknown identifiers."""
    pass


class WizardState(BaseModel):
    """Read-only view of a wizard, as returned to clients."""
    wizard_id: str
    step: Step
    top_three_phase: Optional[TopThreePhase] = None
    reflection_index: Optional[int] = None
    can_advance: bool
    is_saving: bool
    name: str
    group_number: str
    achievements: List[Dict] = Field(default_factory=list)
    top_three: List[Dict] = Field(default_factory=list)
    common_denominators: List[str] = Field(default_factory=list)
    performance_pattern: List[str] = Field(default_factory=list)
    saved_profile_id: Optional[str] = None


class AchievementInput(BaseModel):
    category: Category
    description: str


class NameInput(BaseModel):
    name: str
    group_number: str = ""


class AnswersInput(BaseModel):
    answers: Dict[str, str]


class SlotsInput(BaseModel):
    entries: List[str]
