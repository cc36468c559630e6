import logging
from typing import Awaitable, Callable, Dict, List, Optional

from src.constants import Category, MIN_ACHIEVEMENTS, REFLECTION_KEYS, SUMMARY_SLOTS, TOP_ACHIEVEMENT_COUNT
from src.models.profile import Achievement, Profile, TopAchievement, drop_blank, new_id, utc_now
from src.models.session import SessionContext
from src.storage.base import ProfileStore

from .models import InvalidWizardInput, Step, TopThreePhase, TransitionBlocked, WizardState

logger = logging.getLogger(__name__)


class ReflectionWizard:
    """
    Drives one user through building a profile.

    Steps run welcome → name → achievements → top_three → denominators →
    pattern → complete → browse. The top_three step has a selection phase and
    a reflection phase with a cursor over the three chosen achievements.
    `browse` can also be entered straight from `welcome`, and a viewer
    without a profile can leave `browse` for `name`.
    """

    def __init__(self, wizard_id: Optional[str] = None, initial_step: Step = Step.WELCOME):
        if initial_step not in (Step.WELCOME, Step.BROWSE):
            raise InvalidWizardInput(f"A wizard cannot start at '{initial_step.value}'")
        self.wizard_id = wizard_id or new_id()
        self.step = initial_step
        self.name = ""
        self.group_number = ""
        self.achievements: List[Achievement] = []
        self.top_three: List[TopAchievement] = []
        self.reflecting = False
        self.reflection_index = 0
        self.common_denominators: List[str] = [""] * SUMMARY_SLOTS
        self.performance_pattern: List[str] = [""] * SUMMARY_SLOTS
        self.is_saving = False
        self.saved_profile: Optional[Profile] = None

    # --- Guards ---

    def _require(self, step: Step, phase: Optional[TopThreePhase] = None) -> None:
        if self.step != step:
            raise InvalidWizardInput(f"Operation requires step '{step.value}', wizard is at '{self.step.value}'")
        if phase is not None and self.top_three_phase != phase:
            raise InvalidWizardInput(f"Operation requires the {phase.value} phase of the top three step")

    @property
    def top_three_phase(self) -> Optional[TopThreePhase]:
        if self.step != Step.TOP_THREE:
            return None
        return TopThreePhase.REFLECTION if self.reflecting else TopThreePhase.SELECTION

    @property
    def can_advance(self) -> bool:
        """Whether `advance` would move forward from the current position."""
        if self.step in (Step.WELCOME, Step.DENOMINATORS, Step.COMPLETE):
            return True
        if self.step == Step.NAME:
            return bool(self.name.strip())
        if self.step == Step.ACHIEVEMENTS:
            return len(self.achievements) >= MIN_ACHIEVEMENTS
        if self.step == Step.TOP_THREE:
            return self.reflecting or len(self.top_three) == TOP_ACHIEVEMENT_COUNT
        # pattern completes through save(); browse is terminal
        return False

    # --- Transitions ---

    def advance(self) -> Step:
        if not self.can_advance:
            raise TransitionBlocked(self._blocked_reason())

        if self.step == Step.WELCOME:
            self.step = Step.NAME
        elif self.step == Step.NAME:
            self.step = Step.ACHIEVEMENTS
        elif self.step == Step.ACHIEVEMENTS:
            self.step = Step.TOP_THREE
            self.reflecting = False
        elif self.step == Step.TOP_THREE and not self.reflecting:
            self.reflecting = True
            self.reflection_index = 0
        elif self.step == Step.TOP_THREE:
            if self.reflection_index < TOP_ACHIEVEMENT_COUNT - 1:
                self.reflection_index += 1
            else:
                self.step = Step.DENOMINATORS
        elif self.step == Step.DENOMINATORS:
            self.step = Step.PATTERN
        elif self.step == Step.COMPLETE:
            self.step = Step.BROWSE

        logger.debug(f"Wizard {self.wizard_id} now at {self.step.value} (phase={self.top_three_phase}, cursor={self.reflection_index})")
        return self.step

    def _blocked_reason(self) -> str:
        if self.step == Step.NAME:
            return "A name is required before continuing."
        if self.step == Step.ACHIEVEMENTS:
            return f"At least {MIN_ACHIEVEMENTS} achievements are required, got {len(self.achievements)}."
        if self.step == Step.TOP_THREE:
            return f"Exactly {TOP_ACHIEVEMENT_COUNT} top achievements must be selected, got {len(self.top_three)}."
        if self.step == Step.PATTERN:
            return "The profile must be saved to complete the wizard."
        return f"No forward transition from '{self.step.value}'."

    @classmethod
    def for_session(cls, session: SessionContext, wizard_id: Optional[str] = None) -> "ReflectionWizard":
        """A viewer who already owns a profile lands in browse instead of welcome."""
        initial_step = Step.BROWSE if session.my_profile_id else Step.WELCOME
        return cls(wizard_id=wizard_id, initial_step=initial_step)

    def start_reflection(self, session: Optional[SessionContext] = None) -> Step:
        """
        Moves to the name step, from `welcome` or from `browse`.

        Leaving browse is only possible for a viewer with no saved profile.
        """
        if self.step == Step.BROWSE:
            if session is None or session.my_profile_id or self.saved_profile is not None:
                raise InvalidWizardInput("A profile already exists for this viewer")
            self.step = Step.NAME
            logger.debug(f"Wizard {self.wizard_id} left browse to create a profile")
            return self.step
        self._require(Step.WELCOME)
        return self.advance()

    def open_browse(self) -> Step:
        if self.step not in (Step.WELCOME, Step.COMPLETE, Step.BROWSE):
            raise InvalidWizardInput(f"Browse is not reachable from '{self.step.value}'")
        self.step = Step.BROWSE
        return self.step

    # --- Data entry ---

    def set_name(self, name: str, group_number: Optional[str] = None) -> None:
        self._require(Step.NAME)
        self.name = name
        if group_number is not None:
            self.group_number = group_number

    def set_group_number(self, group_number: str) -> None:
        self._require(Step.NAME)
        self.group_number = group_number

    def add_achievement(self, category: Category, description: str) -> Optional[Achievement]:
        """Adds an achievement. A blank description is ignored and returns None."""
        self._require(Step.ACHIEVEMENTS)
        if not description or not description.strip():
            return None
        try:
            category = Category(category)
        except ValueError:
            raise InvalidWizardInput(f"Unknown category '{category}'")
        achievement = Achievement(category=category, description=description)
        self.achievements.append(achievement)
        return achievement

    def remove_achievement(self, achievement_id: str) -> bool:
        self._require(Step.ACHIEVEMENTS)
        before = len(self.achievements)
        self.achievements = [a for a in self.achievements if a.id != achievement_id]
        return len(self.achievements) != before

    def select_top(self, achievement_id: str) -> bool:
        """
        Promotes an achievement into the top three.

        Returns False without changing anything when it is already selected or
        three are already chosen.
        """
        self._require(Step.TOP_THREE, TopThreePhase.SELECTION)
        achievement = next((a for a in self.achievements if a.id == achievement_id), None)
        if achievement is None:
            raise InvalidWizardInput(f"Unknown achievement id '{achievement_id}'")
        if len(self.top_three) >= TOP_ACHIEVEMENT_COUNT:
            return False
        if any(top.id == achievement_id for top in self.top_three):
            return False
        self.top_three.append(TopAchievement.from_achievement(achievement))
        return True

    def answer(self, index: int, key: str, value: str) -> None:
        self.answer_many(index, {key: value})

    def answer_many(self, index: int, answers: Dict[str, str]) -> None:
        """Sets several answers at once. Nothing is written unless every key is valid."""
        self._require(Step.TOP_THREE, TopThreePhase.REFLECTION)
        if not 0 <= index < len(self.top_three):
            raise InvalidWizardInput(f"Top achievement index {index} is out of range")
        unknown = [key for key in answers if key not in REFLECTION_KEYS]
        if unknown:
            raise InvalidWizardInput(f"Unknown reflection question key(s): {unknown}")
        for key, value in answers.items():
            self.top_three[index].answers.set_answer(key, value)

    def set_denominator(self, slot: int, text: str) -> None:
        self._require(Step.DENOMINATORS)
        self._set_slot(self.common_denominators, slot, text)

    def set_pattern(self, slot: int, text: str) -> None:
        self._require(Step.PATTERN)
        self._set_slot(self.performance_pattern, slot, text)

    def set_denominators(self, entries: List[str]) -> None:
        self._require(Step.DENOMINATORS)
        self.common_denominators = self._fill_slots(entries)

    def set_patterns(self, entries: List[str]) -> None:
        self._require(Step.PATTERN)
        self.performance_pattern = self._fill_slots(entries)

    @staticmethod
    def _set_slot(buffer: List[str], slot: int, text: str) -> None:
        if not 0 <= slot < SUMMARY_SLOTS:
            raise InvalidWizardInput(f"Slot {slot} is out of range (0-{SUMMARY_SLOTS - 1})")
        buffer[slot] = text

    @staticmethod
    def _fill_slots(entries: List[str]) -> List[str]:
        if len(entries) > SUMMARY_SLOTS:
            raise InvalidWizardInput(f"At most {SUMMARY_SLOTS} entries are allowed, got {len(entries)}")
        return list(entries) + [""] * (SUMMARY_SLOTS - len(entries))

    # --- Completion ---

    def build_profile(self) -> Profile:
        """Turns the draft into a Profile, dropping blank denominator and pattern entries."""
        if len(self.top_three) != TOP_ACHIEVEMENT_COUNT:
            raise InvalidWizardInput(f"A profile needs exactly {TOP_ACHIEVEMENT_COUNT} top achievements")
        known_ids = {a.id for a in self.achievements}
        orphans = [top.id for top in self.top_three if top.id not in known_ids]
        if orphans:
            raise InvalidWizardInput(f"Top achievements reference unknown achievements: {orphans}")

        return Profile(
            id=new_id(),
            name=self.name.strip(),
            group_number=self.group_number,
            created_at=utc_now(),
            achievements=[a.model_copy(deep=True) for a in self.achievements],
            top_three=[t.model_copy(deep=True) for t in self.top_three],
            common_denominators=drop_blank(self.common_denominators),
            performance_pattern=drop_blank(self.performance_pattern),
        )

    async def save(
        self,
        store: ProfileStore,
        session: SessionContext,
        refresh: Optional[Callable[[], Awaitable[object]]] = None,
    ) -> bool:
        """
        Persists the profile and moves to `complete`.

        On failure the wizard stays at `pattern`. A save started while another
        one is pending returns False without touching the store. `refresh` runs
        after a successful save and before the step changes, so the new profile
        is in the browse list by the time the client sees `complete`.
        """
        self._require(Step.PATTERN)
        if self.is_saving:
            logger.warning(f"Wizard {self.wizard_id}: save already in progress, ignoring duplicate request")
            return False

        self.is_saving = True
        try:
            profile = self.build_profile()
            if not await store.save(profile):
                logger.warning(f"Wizard {self.wizard_id}: saving profile {profile.id} failed, staying at pattern step", extra={"wizard_id": self.wizard_id, "profile_id": profile.id})
                return False
            session.my_profile_id = profile.id
            self.saved_profile = profile
            if refresh is not None:
                await refresh()
            self.step = Step.COMPLETE
            logger.info(f"Wizard {self.wizard_id}: profile {profile.id} saved for '{profile.name}'", extra={"wizard_id": self.wizard_id, "profile_id": profile.id})
            return True
        finally:
            self.is_saving = False

    def state(self) -> WizardState:
        return WizardState(
            wizard_id=self.wizard_id,
            step=self.step,
            top_three_phase=self.top_three_phase,
            reflection_index=self.reflection_index if self.reflecting and self.step == Step.TOP_THREE else None,
            can_advance=self.can_advance,
            is_saving=self.is_saving,
            name=self.name,
            group_number=self.group_number,
            achievements=[a.model_dump(mode="json") for a in self.achievements],
            top_three=[t.model_dump(mode="json", by_alias=True) for t in self.top_three],
            common_denominators=list(self.common_denominators),
            performance_pattern=list(self.performance_pattern),
            saved_profile_id=self.saved_profile.id if self.saved_profile else None,
        )
