"""Shared test fixtures for the FitBuddy test suite.

Stores are rooted in tmp_path so every test gets a clean data directory.
"""

import pytest

from fitbuddy.agent.context import OnboardingData
from fitbuddy.agent.conversation import ConversationOrchestrator
from fitbuddy.memory.conversations import ConversationStore
from fitbuddy.memory.profile import ProfileStore, build_profile_from_onboarding


@pytest.fixture(autouse=True)
def no_api_key(monkeypatch):
    """Make any unpatched LLM call fail fast instead of reaching the network."""
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)


@pytest.fixture
def profiles(tmp_path):
    return ProfileStore(tmp_path)


@pytest.fixture
def conversations(tmp_path):
    return ConversationStore(tmp_path)


@pytest.fixture
def orchestrator(profiles, conversations):
    return ConversationOrchestrator(profiles=profiles, conversations=conversations)


@pytest.fixture
def make_profile(profiles):
    """Factory for an onboarded user; defaults to a 6 AM morning trainee."""
    def _make(external_id: str = "tg-ada", **overrides) -> dict:
        fields = {
            "name": "Ada",
            "has_timetable": False,
            "gym_time": "6 AM",
            "height": 175,
            "weight": 70,
            "bmi": 22.9,
            "training_philosophy": "arnold",
            "workout_days_per_week": 3,
        }
        fields.update(overrides)
        return profiles.create(build_profile_from_onboarding(external_id, OnboardingData(**fields)))
    return _make
