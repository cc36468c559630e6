import logging
import re
from collections import Counter
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from services.match_engine.scorer import score
from src.models.profile import Profile, ProfileWithMeta
from src.models.session import SessionContext
from src.storage.base import ProfileStore, Unsubscribe

logger = logging.getLogger(__name__)


def natural_key(value: Optional[str]) -> List:
    """Sort key that orders embedded numbers numerically ("2" before "10")."""
    parts = re.split(r"(\d+)", (value or "").casefold())
    return [int(part) if index % 2 else part for index, part in enumerate(parts)]


class GroupOverview(BaseModel):
    group_number: str
    member_count: int
    category_count: Dict[str, int] = Field(default_factory=dict)
    all_denominators: List[str] = Field(default_factory=list)
    all_patterns: List[str] = Field(default_factory=list)


class ProfileBrowser:
    """
    Cached profile collection behind the browse views.

    The cache is replaced wholesale by every refresh. Refreshes are numbered
    and a result is only applied if no later refresh has been applied before
    it, so a slow response cannot overwrite newer data.
    """

    def __init__(self, store: ProfileStore):
        self.store = store
        self.profiles: List[Profile] = []
        self.load_failed = False
        self._issued = 0
        self._applied = 0
        self._unsubscribe: Optional[Unsubscribe] = None

    async def start(self) -> None:
        """Subscribes to store changes and performs the first fetch."""
        if self._unsubscribe is None:
            self._unsubscribe = self.store.subscribe(self.refresh)
        await self.refresh()

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def refresh(self) -> List[Profile]:
        self._issued += 1
        ticket = self._issued
        profiles = await self.store.load()
        failed = self.store.last_read_failed
        if ticket < self._applied:
            logger.debug(f"Discarding stale profile fetch #{ticket}; #{self._applied} already applied")
            return self.profiles
        self._applied = ticket
        self.profiles = profiles
        self.load_failed = failed
        logger.debug(f"Profile cache refreshed (#{ticket}): {len(profiles)} profiles, failed={failed}")
        return profiles

    @property
    def status(self) -> str:
        if self.load_failed:
            return "error"
        return "ok" if self.profiles else "empty"

    def find(self, profile_id: Optional[str]) -> Optional[Profile]:
        if not profile_id:
            return None
        return next((p for p in self.profiles if p.id == profile_id), None)

    def _with_meta(self, profile: Profile, session: SessionContext, my_profile: Optional[Profile]) -> ProfileWithMeta:
        is_own = session.owns(profile.id)
        match_score = None
        if my_profile is not None and not is_own:
            match_score = score(my_profile, profile)
        return ProfileWithMeta.from_profile(profile, match_score=match_score, is_own_profile=is_own)

    def list_profiles(self, session: SessionContext, group: Optional[str] = None) -> List[ProfileWithMeta]:
        """
        Profiles for the browse list: own profile first, then by group number
        (numeric-aware, no group first), then by name. Filtered to one group
        when `group` is given.
        """
        my_profile = self.find(session.my_profile_id)
        items = [self._with_meta(p, session, my_profile) for p in self.profiles]
        items.sort(key=lambda p: (not p.is_own_profile, natural_key(p.group_number), p.name.casefold()))
        if group:
            items = [p for p in items if p.group_number == group]
        return items

    def get_detail(self, profile_id: str, session: SessionContext) -> Optional[ProfileWithMeta]:
        profile = self.find(profile_id)
        if profile is None:
            return None
        return self._with_meta(profile, session, self.find(session.my_profile_id))

    def available_groups(self) -> List[str]:
        groups = {p.group_number for p in self.profiles if p.group_number}
        return sorted(groups, key=natural_key)

    def group_overview(self, group: str) -> Optional[GroupOverview]:
        members = [p for p in self.profiles if p.group_number == group]
        if not members:
            return None
        category_count = Counter()
        for member in members:
            category_count.update(c.value for c in member.categories())
        return GroupOverview(
            group_number=group,
            member_count=len(members),
            category_count=dict(category_count.most_common()),
            all_denominators=[d for member in members for d in member.common_denominators],
            all_patterns=[p for member in members for p in member.performance_pattern],
        )
