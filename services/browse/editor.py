import logging
from typing import List, Optional

from src.constants import SUMMARY_SLOTS
from src.models.profile import Profile, drop_blank
from src.models.session import SessionContext
from src.storage.base import ProfileStore

from .browser import ProfileBrowser

logger = logging.getLogger(__name__)


class NotProfileOwner(PermissionError):
    """Only the device that created a profile may edit it."""
    pass


class InvalidEdit(ValueError):
    """The edited values cannot be saved (e.g. a blank name)."""
    pass


def pad_slots(entries: List[str]) -> List[str]:
    return (list(entries) + [""] * SUMMARY_SLOTS)[:SUMMARY_SLOTS]


class ProfileEditor:
    """Edit buffer for the viewer's own profile: name, group, denominators and pattern."""

    def __init__(self, profile: Profile):
        self.profile = profile
        self.name = profile.name
        self.group_number = profile.group_number or ""
        self.common_denominators = pad_slots(profile.common_denominators)
        self.performance_pattern = pad_slots(profile.performance_pattern)
        self.is_saving = False

    @classmethod
    def start_editing(cls, profile: Profile, session: SessionContext) -> "ProfileEditor":
        if not session.owns(profile.id):
            raise NotProfileOwner(f"Profile {profile.id} does not belong to this session")
        return cls(profile)

    def apply(
        self,
        name: Optional[str] = None,
        group_number: Optional[str] = None,
        common_denominators: Optional[List[str]] = None,
        performance_pattern: Optional[List[str]] = None,
    ) -> None:
        if name is not None:
            self.name = name
        if group_number is not None:
            self.group_number = group_number
        if common_denominators is not None:
            self.common_denominators = self._checked_slots(common_denominators)
        if performance_pattern is not None:
            self.performance_pattern = self._checked_slots(performance_pattern)

    @staticmethod
    def _checked_slots(entries: List[str]) -> List[str]:
        if len(entries) > SUMMARY_SLOTS:
            raise InvalidEdit(f"At most {SUMMARY_SLOTS} entries are allowed, got {len(entries)}")
        return pad_slots(entries)

    def build_updated(self) -> Profile:
        """The full replacement profile. Everything not edited is carried over unchanged."""
        if not self.name.strip():
            raise InvalidEdit("Name cannot be empty.")
        data = self.profile.model_dump()
        data.update(
            name=self.name.strip(),
            group_number=self.group_number,
            common_denominators=drop_blank(self.common_denominators),
            performance_pattern=drop_blank(self.performance_pattern),
        )
        return Profile.model_validate(data)

    async def submit(self, store: ProfileStore, browser: Optional[ProfileBrowser] = None) -> bool:
        if self.is_saving:
            logger.warning(f"Update of profile {self.profile.id} already in progress")
            return False
        updated = self.build_updated()
        self.is_saving = True
        try:
            if not await store.update(updated):
                logger.warning(f"Updating profile {self.profile.id} failed")
                return False
            self.profile = updated
            if browser is not None:
                await browser.refresh()
            logger.info(f"Profile {updated.id} updated")
            return True
        finally:
            self.is_saving = False
