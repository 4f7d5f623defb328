"""Tests for the conversation context value and its serialization."""

import json

import pytest

from fitbuddy.agent.context import (
    Activity,
    ConversationContext,
    ExerciseLogEntry,
    OnboardingData,
    OnboardingSession,
    OnboardingStep,
    ScheduleChangeSession,
    WorkoutSession,
    context_from_dict,
    context_to_dict,
    onboarding_context,
    session_from_dict,
)


def _workout(**kwargs) -> WorkoutSession:
    fields = {"session_id": "session_2026-01-05_180000", "started_at": "2026-01-05T18:00:00"}
    fields.update(kwargs)
    return WorkoutSession(**fields)


# ── Invariants ──────────────────────────────────────────────────────

class TestActivitySessionAgreement:

    def test_default_context_is_unset(self):
        ctx = ConversationContext()
        assert ctx.activity is None
        assert ctx.session is None

    def test_onboarding_session_requires_onboarding_activity(self):
        with pytest.raises(ValueError):
            ConversationContext(activity=Activity.WORKOUT, session=OnboardingSession())

    def test_onboarding_activity_requires_onboarding_session(self):
        with pytest.raises(ValueError):
            ConversationContext(activity=Activity.ONBOARDING)

    def test_workout_session_requires_workout_activity(self):
        with pytest.raises(ValueError):
            ConversationContext(activity=Activity.MEAL_PLANNING, session=_workout())

    def test_suspended_workout_requires_workout_activity(self):
        pending = ScheduleChangeSession("evening", "6 AM - 10 AM", suspended=_workout())
        with pytest.raises(ValueError):
            ConversationContext(activity=Activity.NONE, session=pending)
        assert ConversationContext(activity=Activity.WORKOUT, session=pending).pending_schedule_change

    def test_schedule_change_allowed_under_any_non_onboarding_activity(self):
        pending = ScheduleChangeSession("evening", "6 AM - 10 AM")
        ctx = ConversationContext(activity=Activity.MEAL_PLANNING, session=pending)
        assert ctx.pending_schedule_change is pending

    def test_typed_accessors(self):
        ctx = ConversationContext(activity=Activity.WORKOUT, session=_workout())
        assert ctx.workout is not None
        assert ctx.onboarding is None
        assert ctx.pending_schedule_change is None


# ── Updates ─────────────────────────────────────────────────────────

class TestUpdates:

    def test_with_activity_drops_workout_session(self):
        ctx = ConversationContext(activity=Activity.WORKOUT, session=_workout())
        moved = ctx.with_activity(Activity.MEAL_PLANNING)
        assert moved.activity is Activity.MEAL_PLANNING
        assert moved.session is None
        assert ctx.workout is not None

    def test_with_activity_same_activity_is_identity(self):
        ctx = ConversationContext(activity=Activity.WORKOUT, session=_workout())
        assert ctx.with_activity(Activity.WORKOUT) is ctx

    def test_with_activity_clears_suspended_workout(self):
        pending = ScheduleChangeSession("evening", "6 AM - 10 AM", suspended=_workout())
        ctx = ConversationContext(activity=Activity.WORKOUT, session=pending)
        moved = ctx.with_activity(Activity.NONE)
        assert moved.pending_schedule_change is not None
        assert moved.pending_schedule_change.suspended is None

    def test_with_session_moves_activity_with_variant(self):
        ctx = ConversationContext(activity=Activity.NONE)
        assert ctx.with_session(_workout()).activity is Activity.WORKOUT
        assert ctx.with_session(OnboardingSession()).activity is Activity.ONBOARDING

    def test_with_session_none_keeps_activity(self):
        ctx = ConversationContext(activity=Activity.WORKOUT, session=_workout())
        cleared = ctx.with_session(None)
        assert cleared.activity is Activity.WORKOUT
        assert cleared.session is None

    def test_preferences_are_copied(self):
        prefs = {"humor_enabled": True}
        ctx = ConversationContext().with_preferences(prefs)
        prefs["humor_enabled"] = False
        assert ctx.user_preferences == {"humor_enabled": True}

    def test_touch_sets_last_interaction(self):
        ctx = ConversationContext().touch()
        assert ctx.last_interaction is not None

    def test_contexts_are_immutable(self):
        ctx = ConversationContext()
        with pytest.raises(AttributeError):
            ctx.activity = Activity.WORKOUT

    def test_onboarding_context_starts_at_name(self):
        ctx = onboarding_context()
        assert ctx.activity is Activity.ONBOARDING
        assert ctx.onboarding.step is OnboardingStep.NAME


# ── Serialization ───────────────────────────────────────────────────

class TestSerialization:

    def test_onboarding_context(self):
        session = OnboardingSession(
            step=OnboardingStep.WEIGHT,
            data=OnboardingData(name="John", has_timetable=False, gym_time="6 AM", height=175),
        )
        ctx = ConversationContext(activity=Activity.ONBOARDING, session=session)
        raw = json.loads(json.dumps(context_to_dict(ctx)))
        assert raw["current_activity"] == "onboarding"
        assert raw["session_data"]["kind"] == "onboarding"
        assert context_from_dict(raw) == ctx

    def test_workout_with_suspended_schedule_change(self):
        workout = _workout(
            exercises_logged=(ExerciseLogEntry("squat", 3, 8, 80),),
            current_exercise="bench press",
        )
        pending = ScheduleChangeSession("evening", "6 AM - 10 AM", suspended=workout)
        ctx = ConversationContext(activity=Activity.WORKOUT, session=pending, last_interaction="x")
        restored = context_from_dict(json.loads(json.dumps(context_to_dict(ctx))))
        assert restored == ctx
        assert restored.pending_schedule_change.suspended.exercises_logged[0].weight == 80

    def test_unset_activity(self):
        raw = context_to_dict(ConversationContext())
        assert raw["current_activity"] is None
        assert context_from_dict(raw) == ConversationContext()

    def test_empty_input(self):
        assert context_from_dict(None) == ConversationContext()
        assert session_from_dict(None) is None

    def test_unknown_session_kind(self):
        with pytest.raises(ValueError, match="Unknown session kind"):
            session_from_dict({"kind": "yoga"})
