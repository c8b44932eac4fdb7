from .history import HistoryFeed, HistorySubscription, sort_newest_first
from .models import MBTI_TYPES, Exchange, ImageAttachment, ModeKey, PendingRequest, Profile
from .modes import MODES, StudyMode, get_mode, list_modes
from .profiles import ProfileStore

__all__ = [
    "HistoryFeed",
    "HistorySubscription",
    "sort_newest_first",
    "MBTI_TYPES",
    "Exchange",
    "ImageAttachment",
    "ModeKey",
    "PendingRequest",
    "Profile",
    "MODES",
    "StudyMode",
    "get_mode",
    "list_modes",
    "ProfileStore",
]
