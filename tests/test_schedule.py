"""Tests for gym-time change detection and confirmation."""

from unittest.mock import MagicMock

import pytest

from fitbuddy.agent.context import ScheduleChangeSession, WorkoutSession
from fitbuddy.agent.schedule import ScheduleNegotiator
from fitbuddy.memory.profile import ProfileStoreError


@pytest.fixture
def negotiator(profiles):
    return ScheduleNegotiator(profiles)


@pytest.fixture
def profile(make_profile):
    # Stored window: 6 AM - 10 AM
    return make_profile()


class TestDetect:

    def test_stages_a_different_time(self, negotiator, profile):
        pending = negotiator.detect("I changed my gym time to evening", profile)
        assert pending == ScheduleChangeSession(new_time="evening", previous_time="6 AM - 10 AM")

    def test_nothing_written_when_staging(self, negotiator, profile, profiles):
        negotiator.detect("my gym time is now 7pm", profile)
        stored = profiles.get_by_id(profile["id"])
        assert stored["schedule"]["available_hours"] == [{"start": "06:00", "end": "10:00"}]

    def test_same_window_is_not_a_change(self, negotiator, profile):
        assert negotiator.detect("my gym time is 8am", profile) is None
        assert negotiator.detect("new time: morning", profile) is None

    def test_requires_keyword(self, negotiator, profile):
        assert negotiator.detect("see you at 7pm", profile) is None

    def test_requires_time(self, negotiator, profile):
        assert negotiator.detect("my schedule is chaotic", profile) is None

    def test_keywords_match_whole_words(self, negotiator, make_profile):
        evening = make_profile("tg-eve", gym_time="evening")
        assert negotiator.detect("Hi good morning!", evening) is None
        assert negotiator.detect("I got up early this morning", evening) is None
        assert negotiator.detect("now I go in the morning", evening) is not None

    def test_remembers_suspended_workout(self, negotiator, profile):
        workout = WorkoutSession(session_id="s1", started_at="2026-01-05T18:00:00")
        pending = negotiator.detect("gym time changed to 6pm", profile, suspended=workout)
        assert pending.suspended is workout

    def test_confirmation_prompt_mentions_both_times(self, negotiator, profile):
        pending = negotiator.detect("gym time changed to 6pm", profile)
        prompt = negotiator.confirmation_prompt(pending)
        assert "6 PM" in prompt
        assert "6 AM - 10 AM" in prompt


class TestResolve:

    def _pending(self, negotiator, profile):
        return negotiator.detect("I changed my gym time to evening", profile)

    @pytest.mark.parametrize("reply", ["yes", "Yeah!", "update", "change"])
    def test_yes_commits_canonical_window(self, negotiator, profile, profiles, reply):
        resolution = negotiator.resolve(reply, self._pending(negotiator, profile), profile)
        assert resolution.resolved and resolution.committed
        assert resolution.session is None
        stored = profiles.get_by_id(profile["id"])
        assert stored["schedule"]["available_hours"] == [{"start": "17:00", "end": "21:00"}]
        assert stored["schedule"]["workout_days_per_week"] == 3

    @pytest.mark.parametrize("reply", ["no", "nope", "keep", "previous"])
    def test_no_leaves_profile_untouched(self, negotiator, profile, profiles, reply):
        before = profiles.get_by_id(profile["id"])
        resolution = negotiator.resolve(reply, self._pending(negotiator, profile), profile)
        assert resolution.resolved and not resolution.committed
        assert "6 AM - 10 AM" in resolution.message
        assert profiles.get_by_id(profile["id"]) == before

    def test_unclear_reply_reasks_same_change(self, negotiator, profile):
        pending = self._pending(negotiator, profile)
        resolution = negotiator.resolve("what do you mean?", pending, profile)
        assert not resolution.resolved
        assert resolution.session is pending
        assert "evening" in resolution.message

    def test_resolution_restores_suspended_workout(self, negotiator, profile):
        workout = WorkoutSession(session_id="s1", started_at="2026-01-05T18:00:00")
        pending = negotiator.detect("gym time changed to 6pm", profile, suspended=workout)
        assert negotiator.resolve("no", pending, profile).session is workout
        assert negotiator.resolve("yes", pending, profile).session is workout

    def test_store_failure_keeps_change_pending(self, profile):
        profiles = MagicMock()
        profiles.update_schedule.side_effect = ProfileStoreError("disk full")
        negotiator = ScheduleNegotiator(profiles)
        pending = ScheduleChangeSession(new_time="evening", previous_time="6 AM - 10 AM")
        resolution = negotiator.resolve("yes", pending, profile)
        assert resolution.error_code == "SCHEDULE_UPDATE_ERROR"
        assert resolution.session is pending
        assert not resolution.resolved
