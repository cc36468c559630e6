# Browse views: cached profile list, group overview and own-profile editing.

from .browser import ProfileBrowser, GroupOverview, natural_key
from .editor import ProfileEditor, NotProfileOwner, InvalidEdit

__all__ = [
    "ProfileBrowser",
    "GroupOverview",
    "natural_key",
    "ProfileEditor",
    "NotProfileOwner",
    "InvalidEdit",
]
