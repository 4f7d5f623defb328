"""Schedule-change negotiation for an onboarded user's gym time.

detect() stages a change when a message mentions scheduling and carries a
time that maps to a different window than the stored one. Nothing is
written at that point. resolve() reads the next reply as yes/no: yes commits
the new window to the profile, no drops it, anything else asks again.
"""

import logging
import re
from dataclasses import dataclass

from fitbuddy.agent.context import ScheduleChangeSession, WorkoutSession
from fitbuddy.agent.extractors import HeuristicExtractor, format_time_slots, gym_time_to_slot
from fitbuddy.memory.profile import ProfileStore, ProfileStoreError

logger = logging.getLogger(__name__)

SCHEDULE_KEYWORDS = (
    "gym time", "workout time", "go to gym", "go to the gym", "gym at", "workout at",
    "now i go", "i go", "my time", "schedule", "changed", "new time",
)
_SCHEDULE_RE = re.compile(
    r"\b(?:" + "|".join(re.escape(k) for k in SCHEDULE_KEYWORDS) + r")\b", re.IGNORECASE
)

# Accepted on top of the canonical yes/no tokens when answering this question
SCHEDULE_YES = frozenset({"update", "change"})
SCHEDULE_NO = frozenset({"keep", "maintain", "previous"})


@dataclass(frozen=True)
class Resolution:
    """Outcome of answering a pending schedule change.

    session is what the context should hold afterwards: the pending change
    when the answer was unclear or the update failed, else the suspended
    workout session (or None).
    """
    message: str
    session: ScheduleChangeSession | WorkoutSession | None
    resolved: bool
    committed: bool = False
    profile: dict | None = None
    error_code: str | None = None


class ScheduleNegotiator:
    def __init__(self, profiles: ProfileStore, extractor: HeuristicExtractor | None = None):
        self.profiles = profiles
        self.extract = extractor or HeuristicExtractor()

    def detect(
        self, message: str, profile: dict, suspended: WorkoutSession | None = None
    ) -> ScheduleChangeSession | None:
        """Stage a change if message states a gym time different from the stored one."""
        if not _SCHEDULE_RE.search(message):
            return None

        new_time = self.extract.time(message)
        if not new_time:
            return None

        stored = profile.get("schedule", {}).get("available_hours", [])
        previous_time = format_time_slots(stored)
        if format_time_slots([gym_time_to_slot(new_time)]) == previous_time:
            return None

        logger.info("Staged gym time change %s -> %s for %s", previous_time, new_time, profile.get("id"))
        return ScheduleChangeSession(
            new_time=new_time,
            previous_time=previous_time,
            suspended=suspended,
        )

    def confirmation_prompt(self, pending: ScheduleChangeSession) -> str:
        return (
            f"I noticed you mentioned a new gym time ({pending.new_time}), but your current "
            f"schedule shows {pending.previous_time}. Do you want to update your schedule to "
            f"{pending.new_time}, or keep your previous time? Please say \"yes\" to update or "
            "\"no\" to keep your current schedule."
        )

    def resolve(self, reply: str, pending: ScheduleChangeSession, profile: dict) -> Resolution:
        """Commit, discard, or re-ask a staged change based on a yes/no reply."""
        answer = self.extract.parse_yes_no(reply, extra_yes=SCHEDULE_YES, extra_no=SCHEDULE_NO)

        if answer is None:
            return Resolution(
                message=(
                    f"I noticed you mentioned a new gym time ({pending.new_time}), but your "
                    f"current time is {pending.previous_time}. Do you want to update your "
                    "schedule? Please say \"yes\" to update or \"no\" to keep your current time."
                ),
                session=pending,
                resolved=False,
            )

        if not answer:
            return Resolution(
                message=(
                    f"No problem! I'll keep your previous gym time ({pending.previous_time}). "
                    "Let me know if anything changes!"
                ),
                session=pending.suspended,
                resolved=True,
            )

        slot = gym_time_to_slot(pending.new_time)
        try:
            updated = self.profiles.update_schedule(profile["id"], {"available_hours": [slot]})
        except ProfileStoreError as e:
            logger.warning("Schedule update failed for %s: %s", profile.get("id"), e)
            return Resolution(
                message="I had trouble updating your schedule. Let me try again - "
                        "do you want to switch to the new time? (yes/no)",
                session=pending,
                resolved=False,
                error_code="SCHEDULE_UPDATE_ERROR",
            )

        logger.info("Committed gym time %s for %s", format_time_slots([slot]), profile.get("id"))
        return Resolution(
            message=(
                f"Perfect! I've updated your gym time to {pending.new_time}. "
                "I'll make sure to check in with you at that time!"
            ),
            session=pending.suspended,
            resolved=True,
            committed=True,
            profile=updated,
        )
