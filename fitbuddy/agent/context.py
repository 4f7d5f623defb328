"""Conversation context: the activity label plus its activity-scoped sub-state.

The session sub-state is a tagged union of frozen dataclasses. Exactly one
variant (or none) is held at a time and ConversationContext checks that it
agrees with the activity, so a flow can never read another flow's fields.
All values are immutable; every update returns a new context.
"""

from dataclasses import dataclass, field, replace, asdict
from datetime import datetime
from enum import Enum


def _now_iso() -> str:
    return datetime.now().isoformat(timespec="seconds")


class Activity(Enum):
    ONBOARDING = "onboarding"
    WORKOUT = "workout"
    MEAL_PLANNING = "meal_planning"
    GYM_SEARCH = "gym_search"
    NONE = "none"


class OnboardingStep(Enum):
    NAME = "name"
    HAS_TIMETABLE = "has_timetable"
    CURRENT_TIMETABLE = "current_timetable"
    GYM_TIME = "gym_time"
    HEIGHT = "height"
    WEIGHT = "weight"
    TRAINING_PHILOSOPHY = "training_philosophy"
    SUGGEST_TIMETABLE = "suggest_timetable"
    CONFIRM_SCHEDULE = "confirm_schedule"
    COMPLETE = "complete"


# ── Session variants ────────────────────────────────────────────

@dataclass(frozen=True)
class OnboardingData:
    """Profile fields collected so far during onboarding."""
    name: str | None = None
    has_timetable: bool | None = None
    current_timetable: str | None = None
    gym_time: str | None = None
    height: float | None = None
    weight: float | None = None
    bmi: float | None = None
    training_philosophy: str | None = None
    suggested_timetable: str | None = None
    workout_days_per_week: int | None = None


@dataclass(frozen=True)
class OnboardingSession:
    step: OnboardingStep = OnboardingStep.NAME
    data: OnboardingData = field(default_factory=OnboardingData)


@dataclass(frozen=True)
class ExerciseLogEntry:
    exercise: str
    sets: int
    reps: int
    weight: float | None = None


@dataclass(frozen=True)
class WorkoutSession:
    session_id: str
    started_at: str
    exercises_logged: tuple[ExerciseLogEntry, ...] = ()
    current_exercise: str | None = None


@dataclass(frozen=True)
class ScheduleChangeSession:
    """A staged gym-time change waiting for a yes/no on the next turn.

    suspended holds the workout session (if any) that was authoritative when
    the change was staged; resolving the change restores it.
    """
    new_time: str
    previous_time: str
    pending: bool = True
    suspended: WorkoutSession | None = None


SessionData = OnboardingSession | WorkoutSession | ScheduleChangeSession


# ── Context ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class ConversationContext:
    """Activity label, its session sub-state, and interaction metadata.

    activity None means the activity has never been set.
    """
    activity: Activity | None = None
    session: SessionData | None = None
    user_preferences: dict | None = None
    last_interaction: str | None = None

    def __post_init__(self):
        is_onboarding_session = isinstance(self.session, OnboardingSession)
        if is_onboarding_session != (self.activity is Activity.ONBOARDING):
            raise ValueError(
                f"Activity {self.activity} does not match session {type(self.session).__name__}"
            )
        if isinstance(self.session, WorkoutSession) and self.activity is not Activity.WORKOUT:
            raise ValueError(f"Workout session held under activity {self.activity}")
        suspended = getattr(self.session, "suspended", None)
        if suspended is not None and self.activity is not Activity.WORKOUT:
            raise ValueError(f"Suspended workout held under activity {self.activity}")

    # Typed accessors: each returns its variant or None

    @property
    def onboarding(self) -> OnboardingSession | None:
        return self.session if isinstance(self.session, OnboardingSession) else None

    @property
    def workout(self) -> WorkoutSession | None:
        return self.session if isinstance(self.session, WorkoutSession) else None

    @property
    def pending_schedule_change(self) -> ScheduleChangeSession | None:
        if isinstance(self.session, ScheduleChangeSession) and self.session.pending:
            return self.session
        return None

    # Updates

    def with_activity(self, activity: Activity | None) -> "ConversationContext":
        """Switch activity, dropping session state that no longer fits."""
        if activity is self.activity:
            return self
        session = self.session
        if isinstance(session, (OnboardingSession, WorkoutSession)):
            session = None
        elif isinstance(session, ScheduleChangeSession) and session.suspended is not None:
            session = replace(session, suspended=None)
        return replace(self, activity=activity, session=session)

    def with_session(
        self, session: SessionData | None, activity: Activity | None = None
    ) -> "ConversationContext":
        """Replace the session; the activity follows the variant when not given."""
        if activity is None:
            if isinstance(session, OnboardingSession):
                activity = Activity.ONBOARDING
            elif isinstance(session, WorkoutSession):
                activity = Activity.WORKOUT
            else:
                activity = self.activity
        return replace(self, activity=activity, session=session)

    def with_preferences(self, preferences: dict | None) -> "ConversationContext":
        return replace(self, user_preferences=dict(preferences) if preferences else None)

    def touch(self) -> "ConversationContext":
        return replace(self, last_interaction=_now_iso())


def onboarding_context(step: OnboardingStep = OnboardingStep.NAME) -> ConversationContext:
    """Fresh context for a user entering onboarding."""
    return ConversationContext(
        activity=Activity.ONBOARDING,
        session=OnboardingSession(step=step),
        last_interaction=_now_iso(),
    )


# ── Serialization ───────────────────────────────────────────────

def _workout_to_dict(session: WorkoutSession) -> dict:
    return {
        "kind": "workout",
        "session_id": session.session_id,
        "started_at": session.started_at,
        "exercises_logged": [asdict(e) for e in session.exercises_logged],
        "current_exercise": session.current_exercise,
    }


def _workout_from_dict(raw: dict) -> WorkoutSession:
    return WorkoutSession(
        session_id=raw["session_id"],
        started_at=raw.get("started_at") or _now_iso(),
        exercises_logged=tuple(ExerciseLogEntry(**e) for e in raw.get("exercises_logged", [])),
        current_exercise=raw.get("current_exercise"),
    )


def session_to_dict(session: SessionData | None) -> dict | None:
    if session is None:
        return None
    if isinstance(session, OnboardingSession):
        return {"kind": "onboarding", "step": session.step.value, "data": asdict(session.data)}
    if isinstance(session, WorkoutSession):
        return _workout_to_dict(session)
    return {
        "kind": "schedule_change",
        "pending": session.pending,
        "new_time": session.new_time,
        "previous_time": session.previous_time,
        "suspended": _workout_to_dict(session.suspended) if session.suspended else None,
    }


def session_from_dict(raw: dict | None) -> SessionData | None:
    if not raw:
        return None
    kind = raw.get("kind")
    if kind == "onboarding":
        return OnboardingSession(
            step=OnboardingStep(raw["step"]),
            data=OnboardingData(**raw.get("data", {})),
        )
    if kind == "workout":
        return _workout_from_dict(raw)
    if kind == "schedule_change":
        suspended = raw.get("suspended")
        return ScheduleChangeSession(
            new_time=raw["new_time"],
            previous_time=raw["previous_time"],
            pending=raw.get("pending", True),
            suspended=_workout_from_dict(suspended) if suspended else None,
        )
    raise ValueError(f"Unknown session kind: {kind!r}")


def context_to_dict(context: ConversationContext) -> dict:
    return {
        "current_activity": context.activity.value if context.activity else None,
        "session_data": session_to_dict(context.session),
        "user_preferences": context.user_preferences,
        "last_interaction": context.last_interaction,
    }


def context_from_dict(raw: dict | None) -> ConversationContext:
    if not raw:
        return ConversationContext()
    activity = raw.get("current_activity")
    return ConversationContext(
        activity=Activity(activity) if activity else None,
        session=session_from_dict(raw.get("session_data")),
        user_preferences=raw.get("user_preferences"),
        last_interaction=raw.get("last_interaction"),
    )
