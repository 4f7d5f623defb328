"""Deterministic heuristic extractors: free text in, typed values out.

Every function here is pure and returns None when nothing usable was found,
so callers can re-prompt instead of failing. HeuristicExtractor bundles them
behind one object that the flows accept as a constructor argument, which keeps
the matching rules swappable while still testable one by one.
"""

import re
from dataclasses import dataclass

# ── Yes / No ────────────────────────────────────────────────────

YES_TOKENS = frozenset({
    "yes", "y", "yeah", "yep", "sure", "ok", "okay", "correct", "right", "true",
})
NO_TOKENS = frozenset({
    "no", "n", "nope", "nah", "wrong", "incorrect", "false",
})


def parse_yes_no(
    text: str,
    extra_yes: frozenset = frozenset(),
    extra_no: frozenset = frozenset(),
) -> bool | None:
    """Return True for a yes-token, False for a no-token, None otherwise."""
    token = text.strip().lower().rstrip(".!")
    if token in YES_TOKENS or token in extra_yes:
        return True
    if token in NO_TOKENS or token in extra_no:
        return False
    return None


# ── Name ────────────────────────────────────────────────────────

_NAME_PREFIX_RE = re.compile(r"^(?:my name is|i'm|i am|call me|it's|it is)\s+", re.IGNORECASE)


def extract_name(text: str) -> str | None:
    """Strip conversational prefixes ("my name is", "call me") from a name answer."""
    cleaned = text.strip()
    if len(cleaned) < 2:
        return None
    name = _NAME_PREFIX_RE.sub("", cleaned).strip().rstrip(".!")
    return name or None


# ── Time ────────────────────────────────────────────────────────

TIME_OF_DAY_WORDS = ("after work", "before work", "morning", "afternoon", "evening", "night")

_CLOCK_AMPM_RE = re.compile(r"\b(\d{1,2})(?::(\d{2}))?\s*(am|pm|a\.m\.|p\.m\.)(?![a-z])", re.IGNORECASE)
_CLOCK_24H_RE = re.compile(r"\b([01]?\d|2[0-3]):([0-5]\d)\b")

# Canonical gym windows (start, end)
MORNING_SLOT = {"start": "06:00", "end": "10:00"}
AFTERNOON_SLOT = {"start": "12:00", "end": "16:00"}
EVENING_SLOT = {"start": "17:00", "end": "21:00"}
AFTER_WORK_SLOT = {"start": "17:00", "end": "20:00"}


def extract_time(text: str) -> str | None:
    """Find a time expression and return it in a normalized form.

    "6am" -> "6 AM", "7:30 pm" -> "7:30 PM", "18:00" -> "18:00",
    "in the evening" -> "evening". Returns None when no time is present.
    """
    match = _CLOCK_AMPM_RE.search(text)
    if match:
        hour = int(match.group(1))
        if 1 <= hour <= 12:
            minutes = match.group(2)
            suffix = "AM" if match.group(3).lower().startswith("a") else "PM"
            return f"{hour}:{minutes} {suffix}" if minutes else f"{hour} {suffix}"

    match = _CLOCK_24H_RE.search(text)
    if match:
        return f"{int(match.group(1)):02d}:{match.group(2)}"

    lower = text.lower()
    for word in TIME_OF_DAY_WORDS:
        if word in lower:
            return word
    return None


def _hour_of(time_text: str) -> int | None:
    """24h hour of a normalized clock time, or None for time-of-day words."""
    match = _CLOCK_AMPM_RE.search(time_text)
    if match:
        hour = int(match.group(1)) % 12
        if match.group(3).lower().startswith("p"):
            hour += 12
        return hour
    match = _CLOCK_24H_RE.search(time_text)
    if match:
        return int(match.group(1))
    return None


def gym_time_to_slot(time_text: str) -> dict:
    """Map free-text gym time onto one of the canonical time windows.

    Words win over clock times; a clock time falls into the window covering
    its hour. Anything unparseable defaults to the evening window.
    """
    lower = time_text.lower()
    if "after work" in lower:
        return dict(AFTER_WORK_SLOT)
    if "morning" in lower or "before work" in lower:
        return dict(MORNING_SLOT)
    if "afternoon" in lower:
        return dict(AFTERNOON_SLOT)
    if "evening" in lower or "night" in lower:
        return dict(EVENING_SLOT)

    hour = _hour_of(time_text)
    if hour is None:
        return dict(EVENING_SLOT)
    if hour < 12:
        return dict(MORNING_SLOT)
    if hour < 17:
        return dict(AFTERNOON_SLOT)
    return dict(EVENING_SLOT)


def _format_hour(hour: int) -> str:
    if hour == 0:
        return "12 AM"
    if hour < 12:
        return f"{hour} AM"
    if hour == 12:
        return "12 PM"
    return f"{hour - 12} PM"


def format_time_slots(slots: list[dict] | None) -> str:
    """Render the first slot as "5 PM - 9 PM", or "not set"."""
    if not slots:
        return "not set"
    slot = slots[0]
    start = int(slot["start"].split(":")[0])
    end = int(slot["end"].split(":")[0])
    return f"{_format_hour(start)} - {_format_hour(end)}"


# ── Body measurements ───────────────────────────────────────────

CM_PER_FOOT = 30.48
CM_PER_INCH = 2.54
KG_PER_POUND = 0.453592

_NUMBER = r"(\d+(?:\.\d+)?)"
_CM_RE = re.compile(_NUMBER + r"\s*(?:cm|centimet(?:er|re)s?)\b")
_FEET_INCHES_RE = re.compile(
    r"(\d+)\s*(?:feet|foot|ft|')\s*(?:(\d+(?:\.\d+)?)\s*(?:inches|inch|in|\"|'')?)?"
)
_KG_RE = re.compile(_NUMBER + r"\s*(?:kg|kgs|kilos?|kilograms?)\b")
_LB_RE = re.compile(_NUMBER + r"\s*(?:lbs?|pounds?)\b")
_BARE_NUMBER_RE = re.compile(_NUMBER)


def _as_number(value: float) -> float | int:
    return int(value) if float(value).is_integer() else value


def extract_height(text: str) -> float | int | None:
    """Height in centimeters from metric, imperial, or a bare number."""
    cleaned = text.lower().strip()

    match = _CM_RE.search(cleaned)
    if match:
        return _as_number(float(match.group(1)))

    match = _FEET_INCHES_RE.search(cleaned)
    if match:
        feet = float(match.group(1))
        inches = float(match.group(2)) if match.group(2) else 0.0
        return round(feet * CM_PER_FOOT + inches * CM_PER_INCH)

    match = _BARE_NUMBER_RE.search(cleaned)
    if match:
        number = float(match.group(1))
        if number > 100:
            return _as_number(number)
        if number < 8:
            return round(number * CM_PER_FOOT)
    return None


def extract_weight(text: str) -> float | int | None:
    """Weight in kilograms from metric, imperial, or a bare number."""
    cleaned = text.lower().strip()

    match = _KG_RE.search(cleaned)
    if match:
        return _as_number(float(match.group(1)))

    match = _LB_RE.search(cleaned)
    if match:
        return round(float(match.group(1)) * KG_PER_POUND)

    match = _BARE_NUMBER_RE.search(cleaned)
    if match:
        number = float(match.group(1))
        if 30 < number < 200:
            return _as_number(number)
        if 60 < number < 500:
            return round(number * KG_PER_POUND)
    return None


def calculate_bmi(weight_kg: float, height_cm: float) -> float:
    """Body-mass index rounded to one decimal."""
    height_m = height_cm / 100
    return round(weight_kg / (height_m * height_m), 1)


def bmi_category(bmi: float | None) -> str:
    if not bmi:
        return "Unknown"
    if bmi < 18.5:
        return "Underweight"
    if bmi < 25:
        return "Normal weight"
    if bmi < 30:
        return "Overweight"
    return "Obese"


# ── Training choices ────────────────────────────────────────────

TRAINING_PHILOSOPHIES = {
    "arnold": "Arnold (High Volume)",
    "mentzer": "Mentzer (High Intensity)",
    "custom": "Balanced",
}


def extract_training_philosophy(text: str) -> str | None:
    """Map an answer to "arnold", "mentzer" or "custom" (balanced)."""
    lower = text.lower().strip()
    if "1" in lower or "arnold" in lower or "volume" in lower:
        return "arnold"
    if "2" in lower or "mentzer" in lower or "intensity" in lower:
        return "mentzer"
    if any(w in lower for w in ("3", "not sure", "balanced", "mix", "both")):
        return "custom"
    return None


def extract_plan_size(text: str) -> int | None:
    """Workout days per week for a suggested plan: 3 or 6."""
    lower = text.lower().strip()
    if "3" in lower or "three" in lower:
        return 3
    if "6" in lower or "six" in lower or "week" in lower:
        return 6
    return None


WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
_WEEKDAY_RE = re.compile(r"\b(" + "|".join(WEEKDAYS) + r")\b", re.IGNORECASE)


def parse_workout_days(timetable: str | None) -> list[str]:
    """Capitalized weekday names mentioned in a free-text timetable, in order."""
    if not timetable:
        return []
    days = []
    for match in _WEEKDAY_RE.finditer(timetable):
        day = match.group(1).capitalize()
        if day not in days:
            days.append(day)
    return days


# ── Exercises ───────────────────────────────────────────────────

EXERCISE_VOCABULARY = (
    "bench press", "incline press", "chest press", "shoulder press", "overhead press",
    "leg press", "squat", "deadlift", "bicep curl", "hammer curl", "leg curl",
    "tricep extension", "leg extension", "lat pulldown", "pull up", "push up",
    "chin up", "hip thrust", "calf raise", "lateral raise", "lunge", "dip",
    "row", "fly",
)

_SETS_REPS_RE = re.compile(
    r"(\d+)\s*(?:sets?\s*(?:of|x|by)?|x)\s*(\d+)"
    r"(?![\d.]|\s*(?:kg|kgs|kilos?|lbs?|pounds?)\b)\s*(?:reps?|repetitions?)?",
    re.IGNORECASE,
)
_LIFT_WEIGHT_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(kg|kgs|kilos?|lbs?|pounds?)\b", re.IGNORECASE)
_FIRST_DIGIT_RE = re.compile(r"\d")


@dataclass(frozen=True)
class ExerciseInfo:
    """Whatever could be recognised in one workout message."""
    exercise: str | None = None
    sets: int | None = None
    reps: int | None = None
    weight: float | int | None = None

    @property
    def has_sets_reps(self) -> bool:
        return self.sets is not None and self.reps is not None


def extract_exercise(text: str) -> ExerciseInfo:
    """Pull exercise name, sets, reps and weight (kg) out of a workout message.

    Sets/reps accept "3 sets of 10 reps", "3 sets x 10" and "3x10". Pounds
    are converted to kilograms and rounded. The name comes from a fixed
    vocabulary first, then falls back to the text before the first digit.
    """
    lower = text.lower()
    sets = reps = weight = None

    match = _SETS_REPS_RE.search(text)
    if match:
        sets = int(match.group(1))
        reps = int(match.group(2))

    weight_match = _LIFT_WEIGHT_RE.search(text)
    if weight_match:
        value = float(weight_match.group(1))
        if weight_match.group(2).lower().startswith(("lb", "pound")):
            weight = round(value * KG_PER_POUND)
        else:
            weight = _as_number(value)

    exercise = None
    for name in EXERCISE_VOCABULARY:
        if name in lower:
            exercise = name
            break

    if exercise is None:
        digit = _FIRST_DIGIT_RE.search(text)
        if digit:
            label = text[:digit.start()].strip(" \t@:,-").lower()
            exercise = label or None

    return ExerciseInfo(exercise=exercise, sets=sets, reps=reps, weight=weight)


class HeuristicExtractor:
    """Rule-based extractor set used by the conversation flows.

    Swap in a subclass to change matching rules for a flow without touching
    the flow itself.
    """

    parse_yes_no = staticmethod(parse_yes_no)
    name = staticmethod(extract_name)
    time = staticmethod(extract_time)
    height = staticmethod(extract_height)
    weight = staticmethod(extract_weight)
    training_philosophy = staticmethod(extract_training_philosophy)
    plan_size = staticmethod(extract_plan_size)
    exercise = staticmethod(extract_exercise)
