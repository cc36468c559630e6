# src/constants.py
from enum import Enum


class Category(str, Enum):
    """Closed set of achievement categories. Values are persisted; never rename them."""
    STUDIER = "studier"
    JOBB = "jobb"
    FRIVILLIG = "frivillig"
    HOBBYER = "hobbyer"
    IDRETT = "idrett"
    FAMILIE = "familie"


# Reflection question keys, in the order the questions are asked.
REFLECTION_KEYS = (
    "whatWasIt",
    "whyYou",
    "thoughtsAndFeelings",
    "howPrepared",
    "howWorked",
    "feelingsDuring",
    "handledResistance",
    "othersInvolved",
    "result",
    "reward",
    "feelingsAfter",
)

TOP_ACHIEVEMENT_COUNT = 3
MIN_ACHIEVEMENTS = 3
SUMMARY_SLOTS = 5
