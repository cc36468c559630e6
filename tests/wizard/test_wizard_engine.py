import asyncio

import pytest

from conftest import InMemoryProfileStore
from services.wizard.engine import ReflectionWizard
from services.wizard.models import InvalidWizardInput, Step, TopThreePhase, TransitionBlocked
from src.constants import Category, REFLECTION_KEYS
from src.models.session import SessionContext

KARI_ACHIEVEMENTS = [
    (Category.STUDIER, "Bestod matteeksamen"),
    (Category.IDRETT, "Vant kretsmesterskap"),
    (Category.JOBB, "Sommerjobb som leder"),
]


def wizard_at_achievements(name="Kari") -> ReflectionWizard:
    wizard = ReflectionWizard()
    wizard.start_reflection()
    wizard.set_name(name, "2")
    wizard.advance()
    return wizard


def wizard_at_top_three() -> ReflectionWizard:
    wizard = wizard_at_achievements()
    for category, description in KARI_ACHIEVEMENTS:
        wizard.add_achievement(category, description)
    wizard.advance()
    return wizard


def wizard_at_denominators() -> ReflectionWizard:
    wizard = wizard_at_top_three()
    for achievement in wizard.achievements:
        wizard.select_top(achievement.id)
    wizard.advance()
    for index in range(3):
        for key in REFLECTION_KEYS:
            wizard.answer(index, key, f"{key} svar {index}")
        wizard.advance()
    return wizard


def wizard_at_pattern() -> ReflectionWizard:
    wizard = wizard_at_denominators()
    wizard.set_denominators(["struktur", "", "deadline", "", ""])
    wizard.advance()
    wizard.set_patterns(["alene", "", "", "", ""])
    return wizard


# --- Scenario ---

@pytest.mark.asyncio
async def test_full_reflection_saves_filtered_profile():
    store = InMemoryProfileStore()
    session = SessionContext()
    wizard = wizard_at_pattern()

    assert await wizard.save(store, session) is True

    assert wizard.step == Step.COMPLETE
    profile = wizard.saved_profile
    assert profile.name == "Kari"
    assert profile.group_number == "2"
    assert profile.common_denominators == ["struktur", "deadline"]
    assert profile.performance_pattern == ["alene"]
    assert len(profile.top_three) == 3
    assert profile.top_three[2].answers.get_answer("feelingsAfter") == "feelingsAfter svar 2"
    assert session.my_profile_id == profile.id
    assert store.records[0]["id"] == profile.id

    wizard.advance()
    assert wizard.step == Step.BROWSE


# --- Guards ---

def test_welcome_can_go_to_name_or_browse():
    wizard = ReflectionWizard()
    assert wizard.start_reflection() == Step.NAME

    other = ReflectionWizard()
    assert other.open_browse() == Step.BROWSE


def test_viewer_with_profile_starts_in_browse():
    wizard = ReflectionWizard.for_session(SessionContext(my_profile_id="p1"))
    assert wizard.step == Step.BROWSE

    assert ReflectionWizard.for_session(SessionContext()).step == Step.WELCOME


def test_wizard_cannot_start_mid_flow():
    with pytest.raises(InvalidWizardInput):
        ReflectionWizard(initial_step=Step.PATTERN)


def test_browse_to_name_without_profile():
    wizard = ReflectionWizard()
    wizard.open_browse()

    assert wizard.start_reflection(SessionContext()) == Step.NAME
    wizard.set_name("Kari")
    assert wizard.advance() == Step.ACHIEVEMENTS


def test_browse_to_name_refused_for_profile_owner():
    wizard = ReflectionWizard.for_session(SessionContext(my_profile_id="p1"))
    with pytest.raises(InvalidWizardInput):
        wizard.start_reflection(SessionContext(my_profile_id="p1"))
    with pytest.raises(InvalidWizardInput):
        wizard.start_reflection()
    assert wizard.step == Step.BROWSE


def test_browse_not_reachable_mid_wizard():
    wizard = wizard_at_achievements()
    with pytest.raises(InvalidWizardInput):
        wizard.open_browse()


@pytest.mark.parametrize("name", ["", "   "])
def test_name_required(name):
    wizard = ReflectionWizard()
    wizard.start_reflection()
    wizard.set_name(name)

    assert wizard.can_advance is False
    with pytest.raises(TransitionBlocked):
        wizard.advance()
    assert wizard.step == Step.NAME


@pytest.mark.asyncio
async def test_blank_group_number_saved_as_none():
    wizard = ReflectionWizard()
    wizard.start_reflection()
    wizard.set_name("  Ola ")
    wizard.set_group_number("   ")
    wizard.advance()
    for category, description in KARI_ACHIEVEMENTS:
        wizard.add_achievement(category, description)
    wizard.advance()

    for achievement in wizard.achievements:
        wizard.select_top(achievement.id)
    for _ in range(4):
        wizard.advance()
    wizard.advance()
    assert await wizard.save(InMemoryProfileStore(), SessionContext()) is True

    assert wizard.saved_profile.name == "Ola"
    assert wizard.saved_profile.group_number is None
    assert wizard.saved_profile.common_denominators == []


def test_three_achievements_required():
    wizard = wizard_at_achievements()
    wizard.add_achievement(Category.STUDIER, "Eksamen")
    wizard.add_achievement(Category.JOBB, "Sommerjobb")

    with pytest.raises(TransitionBlocked):
        wizard.advance()

    wizard.add_achievement(Category.FAMILIE, "Hjalp lillebror")
    assert wizard.advance() == Step.TOP_THREE
    assert wizard.top_three_phase == TopThreePhase.SELECTION


def test_blank_achievement_is_ignored():
    wizard = wizard_at_achievements()
    assert wizard.add_achievement(Category.HOBBYER, "   ") is None
    assert wizard.achievements == []


def test_unknown_category_rejected():
    wizard = wizard_at_achievements()
    with pytest.raises(InvalidWizardInput):
        wizard.add_achievement("skole", "Eksamen")


def test_remove_achievement():
    wizard = wizard_at_achievements()
    achievement = wizard.add_achievement(Category.IDRETT, "Maraton")

    assert wizard.remove_achievement(achievement.id) is True
    assert wizard.remove_achievement(achievement.id) is False
    assert wizard.achievements == []


def test_top_three_cardinality():
    wizard = wizard_at_achievements()
    for category, description in KARI_ACHIEVEMENTS + [(Category.FRIVILLIG, "Røde Kors")]:
        wizard.add_achievement(category, description)
    wizard.advance()
    ids = [a.id for a in wizard.achievements]

    assert wizard.select_top(ids[0]) is True
    assert wizard.select_top(ids[0]) is False
    assert wizard.select_top(ids[1]) is True
    with pytest.raises(TransitionBlocked):
        wizard.advance()
    assert wizard.select_top(ids[2]) is True
    assert wizard.select_top(ids[3]) is False
    assert [t.id for t in wizard.top_three] == ids[:3]
    assert wizard.top_three[0].title == "Bestod matteeksamen"


def test_select_unknown_achievement():
    wizard = wizard_at_top_three()
    with pytest.raises(InvalidWizardInput):
        wizard.select_top("missing")


def test_reflection_cursor_walks_three_achievements():
    wizard = wizard_at_top_three()
    for achievement in wizard.achievements:
        wizard.select_top(achievement.id)

    wizard.advance()
    assert wizard.top_three_phase == TopThreePhase.REFLECTION
    assert wizard.reflection_index == 0
    wizard.advance()
    wizard.advance()
    assert wizard.reflection_index == 2
    assert wizard.step == Step.TOP_THREE
    wizard.advance()
    assert wizard.step == Step.DENOMINATORS


def test_answer_validation():
    wizard = wizard_at_top_three()
    for achievement in wizard.achievements:
        wizard.select_top(achievement.id)
    with pytest.raises(InvalidWizardInput):
        wizard.answer(0, "whatWasIt", "for tidlig")

    wizard.advance()
    with pytest.raises(InvalidWizardInput):
        wizard.answer(3, "whatWasIt", "x")
    with pytest.raises(InvalidWizardInput):
        wizard.answer(0, "mood", "x")

    wizard.advance()
    wizard.answer(0, "whatWasIt", "Rettet i etterkant")
    assert wizard.top_three[0].answers.what_was_it == "Rettet i etterkant"


def test_answer_many_rejects_batch_with_unknown_key():
    wizard = wizard_at_top_three()
    for achievement in wizard.achievements:
        wizard.select_top(achievement.id)
    wizard.advance()
    wizard.answer(0, "whatWasIt", "Eksamen")

    with pytest.raises(InvalidWizardInput):
        wizard.answer_many(0, {"whatWasIt": "Endret", "mood": "x"})
    assert wizard.top_three[0].answers.what_was_it == "Eksamen"

    wizard.answer_many(0, {"whatWasIt": "Endret", "feelingsAfter": "Stolt"})
    assert wizard.top_three[0].answers.what_was_it == "Endret"
    assert wizard.top_three[0].answers.get_answer("feelingsAfter") == "Stolt"


def test_slots_are_bounded():
    wizard = wizard_at_denominators()
    with pytest.raises(InvalidWizardInput):
        wizard.set_denominator(5, "x")
    with pytest.raises(InvalidWizardInput):
        wizard.set_denominators(["a", "b", "c", "d", "e", "f"])

    wizard.set_denominator(4, "fokus")
    assert wizard.common_denominators == ["", "", "", "", "fokus"]


def test_pattern_completes_only_through_save():
    wizard = wizard_at_pattern()
    with pytest.raises(TransitionBlocked):
        wizard.advance()


def test_state_view():
    wizard = wizard_at_top_three()
    state = wizard.state()

    assert state.step == Step.TOP_THREE
    assert state.top_three_phase == TopThreePhase.SELECTION
    assert state.reflection_index is None
    assert state.can_advance is False
    assert len(state.achievements) == 3
    assert state.common_denominators == [""] * 5


# --- Saving ---

@pytest.mark.asyncio
async def test_failed_save_stays_at_pattern():
    store = InMemoryProfileStore()
    store.fail_writes = True
    session = SessionContext()
    wizard = wizard_at_pattern()

    assert await wizard.save(store, session) is False

    assert wizard.step == Step.PATTERN
    assert wizard.is_saving is False
    assert session.my_profile_id is None
    assert wizard.performance_pattern[0] == "alene"


@pytest.mark.asyncio
async def test_duplicate_save_while_pending():
    class SlowStore(InMemoryProfileStore):
        def __init__(self):
            super().__init__()
            self.release = asyncio.Event()

        async def _insert_record(self, record):
            await self.release.wait()
            return await super()._insert_record(record)

    store = SlowStore()
    session = SessionContext()
    wizard = wizard_at_pattern()

    first = asyncio.create_task(wizard.save(store, session))
    await asyncio.sleep(0)
    assert wizard.is_saving is True
    assert await wizard.save(store, session) is False

    store.release.set()
    assert await first is True
    assert len(store.records) == 1


@pytest.mark.asyncio
async def test_refresh_runs_before_complete():
    store = InMemoryProfileStore()
    wizard = wizard_at_pattern()
    seen = []

    async def refresh():
        seen.append((wizard.step, len(store.records)))

    await wizard.save(store, SessionContext(), refresh=refresh)

    assert seen == [(Step.PATTERN, 1)]
    assert wizard.step == Step.COMPLETE


@pytest.mark.asyncio
async def test_save_requires_pattern_step():
    wizard = wizard_at_denominators()
    with pytest.raises(InvalidWizardInput):
        await wizard.save(InMemoryProfileStore(), SessionContext())
