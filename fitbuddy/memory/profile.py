"""User profile creation and persistence.

Profiles are plain dicts stored one JSON document per user under
<data_dir>/profiles/<id>.json. Internal ids are uuid4 hex strings; any other
identifier is treated as an external (messaging platform) id.
"""

import json
import logging
import os
import re
import uuid
from datetime import datetime
from pathlib import Path

from fitbuddy.agent.context import OnboardingData
from fitbuddy.agent.extractors import calculate_bmi, gym_time_to_slot, parse_workout_days

logger = logging.getLogger(__name__)

DATA_DIR = Path(os.environ.get("FITBUDDY_DATA_DIR", Path(__file__).parent.parent.parent / "data"))

DEFAULT_WORKOUT_DAYS_PER_WEEK = 3
DEFAULT_WORKOUT_MINUTES = 60

_INTERNAL_ID_RE = re.compile(r"^[0-9a-f]{32}$")


class ProfileStoreError(Exception):
    """Raised when a profile cannot be read or written."""


def _now_iso() -> str:
    return datetime.now().isoformat(timespec="seconds")


def new_profile_id() -> str:
    return uuid.uuid4().hex


def is_internal_id(user_id: str) -> bool:
    """True when user_id is a well-formed internal profile id."""
    return bool(_INTERNAL_ID_RE.match(user_id or ""))


def build_profile_from_onboarding(external_id: str, data: OnboardingData) -> dict:
    """Create a profile dict from collected onboarding answers.

    Workout days come from weekday names in the stated timetable; without
    any, the suggested plan size (or 3) sets the weekly count. The gym time
    is mapped onto a canonical time window.
    """
    workout_days = parse_workout_days(data.current_timetable)
    if workout_days:
        days_per_week = len(workout_days)
    else:
        days_per_week = data.workout_days_per_week or DEFAULT_WORKOUT_DAYS_PER_WEEK

    bmi = data.bmi
    if bmi is None and data.height and data.weight:
        bmi = calculate_bmi(data.weight, data.height)

    return {
        "external_id": external_id,
        "profile": {
            "name": data.name or "User",
            "age": None,
            "height": data.height,
            "weight": data.weight,
            "bmi": bmi,
            "fitness_goal": "maintain",
            "training_philosophy": data.training_philosophy or "custom",
            "experience_level": "beginner",
        },
        "schedule": {
            "work_days": workout_days,
            "available_hours": [gym_time_to_slot(data.gym_time or "")],
            "preferred_workout_duration": DEFAULT_WORKOUT_MINUTES,
            "workout_days_per_week": days_per_week,
        },
        "preferences": {
            "reminder_frequency": "daily",
            "humor_enabled": True,
            "conversation_style": "casual",
        },
    }


class ProfileStore:
    """JSON-file profile store keyed by internal id."""

    def __init__(self, data_dir: Path | None = None):
        self._data_dir = Path(data_dir) if data_dir else DATA_DIR
        self._profiles_dir = self._data_dir / "profiles"

    def _path(self, profile_id: str) -> Path:
        return self._profiles_dir / f"{profile_id}.json"

    def _read(self, path: Path) -> dict:
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ProfileStoreError(f"Could not read profile {path.name}: {e}") from e

    def _write(self, profile: dict) -> None:
        try:
            self._profiles_dir.mkdir(parents=True, exist_ok=True)
            self._path(profile["id"]).write_text(json.dumps(profile, indent=2), encoding="utf-8")
        except OSError as e:
            raise ProfileStoreError(f"Could not save profile {profile['id']}: {e}") from e

    def get_by_id(self, profile_id: str) -> dict | None:
        if not is_internal_id(profile_id):
            return None
        path = self._path(profile_id)
        if not path.exists():
            return None
        return self._read(path)

    def get_by_external_id(self, external_id: str) -> dict | None:
        if not self._profiles_dir.exists():
            return None
        for path in sorted(self._profiles_dir.glob("*.json")):
            try:
                profile = self._read(path)
            except ProfileStoreError as e:
                logger.warning("Skipping unreadable profile: %s", e)
                continue
            if profile.get("external_id") == external_id:
                return profile
        return None

    def resolve(self, user_id: str) -> dict | None:
        """Look up an internal id directly, anything else as an external id."""
        if is_internal_id(user_id):
            return self.get_by_id(user_id)
        return self.get_by_external_id(user_id)

    def create(self, profile: dict) -> dict:
        """Assign an id and timestamps, persist, and return the stored profile."""
        now = _now_iso()
        stored = dict(profile)
        stored["id"] = new_profile_id()
        stored["created_at"] = now
        stored["updated_at"] = now
        self._write(stored)
        logger.info("Created profile %s for external id %s", stored["id"], stored.get("external_id"))
        return stored

    def update_schedule(self, profile_id: str, patch: dict) -> dict:
        """Merge patch into the stored schedule and return the updated profile."""
        profile = self.get_by_id(profile_id)
        if profile is None:
            raise ProfileStoreError(f"No profile with id {profile_id}")
        profile["schedule"] = {**profile.get("schedule", {}), **patch}
        profile["updated_at"] = _now_iso()
        self._write(profile)
        return profile
