"""Keyword intent classification: map a message to the current activity.

Precedence, first match wins:
    gym_search    -- "gym" together with a find/location word
    workout       -- gym / workout / exercise vocabulary
    meal_planning -- food / eating / meal vocabulary

A message with no match leaves the activity unchanged. Matching is on whole
words, case-insensitive, so "great" does not count as "eat".
"""

import re

from fitbuddy.agent.context import Activity

GYM_SEARCH_WORDS = ("find", "location", "locations", "near", "nearby", "where")
WORKOUT_WORDS = (
    "gym", "workout", "workouts", "exercise", "exercises", "training", "lifting",
)
MEAL_WORDS = (
    "food", "eat", "eating", "meal", "meals", "breakfast", "lunch", "dinner",
    "calories", "diet", "nutrition",
)

# Entry phrases that put the user into a workout session
WORKOUT_TRIGGER_PHRASES = (
    "at the gym", "in the gym", "starting my workout", "start my workout",
    "starting a workout", "hit the gym",
)


def _words_pattern(words: tuple[str, ...]) -> re.Pattern:
    return re.compile(r"\b(?:" + "|".join(re.escape(w) for w in words) + r")\b", re.IGNORECASE)


_GYM_RE = _words_pattern(("gym", "gyms"))
_GYM_SEARCH_RE = _words_pattern(GYM_SEARCH_WORDS)
_WORKOUT_RE = _words_pattern(WORKOUT_WORDS)
_MEAL_RE = _words_pattern(MEAL_WORDS)


def classify(message: str, current_activity: Activity | None) -> Activity | None:
    """Return the activity a message belongs to, or current_activity if none."""
    if _GYM_RE.search(message) and _GYM_SEARCH_RE.search(message):
        return Activity.GYM_SEARCH
    if _WORKOUT_RE.search(message):
        return Activity.WORKOUT
    if _MEAL_RE.search(message):
        return Activity.MEAL_PLANNING
    return current_activity


def is_workout_trigger(message: str) -> bool:
    """True when the message announces the user is starting to train."""
    lower = message.lower()
    return any(phrase in lower for phrase in WORKOUT_TRIGGER_PHRASES)
