"""Workout session tracking: log exercise/sets/reps/weight from chat messages.

The first turn of a session only acknowledges and asks for the exercise.
Later turns run the exercise extractor; a name without sets/reps is staged
as current_exercise so the next message can finish the entry. An explicit
end phrase closes the session with a summary.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime

from fitbuddy.agent.context import ExerciseLogEntry, WorkoutSession
from fitbuddy.agent.extractors import HeuristicExtractor

logger = logging.getLogger(__name__)

END_PHRASES = (
    "done", "i'm done", "im done", "finished", "finished my workout", "end workout",
    "workout done", "that's it", "thats it",
)


@dataclass(frozen=True)
class WorkoutTurn:
    """Reply for one workout message.

    session is None once the session has ended.
    """
    message: str
    session: WorkoutSession | None
    logged: ExerciseLogEntry | None = None
    started: bool = False

    @property
    def ended(self) -> bool:
        return self.session is None


def _format_entry(entry: ExerciseLogEntry) -> str:
    text = f"{entry.exercise} - {entry.sets} sets x {entry.reps} reps"
    if entry.weight is not None:
        text += f" @ {entry.weight}kg"
    return text


def is_end_of_workout(message: str) -> bool:
    return message.strip().lower().rstrip(".!") in END_PHRASES


class WorkoutTracker:
    def __init__(self, extractor: HeuristicExtractor | None = None):
        self.extract = extractor or HeuristicExtractor()

    def start(self, session: WorkoutSession | None = None) -> WorkoutTurn:
        """Open a session (or keep the running one) and ask for the first exercise."""
        if session is None:
            now = datetime.now()
            session = WorkoutSession(
                session_id=now.strftime("session_%Y-%m-%d_%H%M%S"),
                started_at=now.isoformat(timespec="seconds"),
            )
            logger.info("Started workout session %s", session.session_id)
        return WorkoutTurn(
            message=(
                "Let's go! Have a great session. What exercise are you starting with, "
                "or what did you just finish?"
            ),
            session=session,
            started=True,
        )

    def handle(self, message: str, session: WorkoutSession) -> WorkoutTurn:
        """Process one message inside a running session."""
        if is_end_of_workout(message):
            return self._finish(session)

        info = self.extract.exercise(message)
        exercise = info.exercise or session.current_exercise

        if exercise and info.has_sets_reps:
            entry = ExerciseLogEntry(
                exercise=exercise, sets=info.sets, reps=info.reps, weight=info.weight,
            )
            updated = replace(
                session,
                exercises_logged=session.exercises_logged + (entry,),
                current_exercise=None,
            )
            logger.info("Logged %s in %s", _format_entry(entry), session.session_id)
            return WorkoutTurn(
                message=f"Logged: {_format_entry(entry)}. Nice work! What exercise is next?",
                session=updated,
                logged=entry,
            )

        if info.exercise:
            return WorkoutTurn(
                message=(
                    f"Nice, {info.exercise}! How many sets and reps did you do? "
                    "And what weight did you use? (optional)"
                ),
                session=replace(session, current_exercise=info.exercise),
            )

        if session.current_exercise:
            return WorkoutTurn(
                message=(
                    f"How many sets and reps did you do for {session.current_exercise}? "
                    '(e.g., "3 sets of 10 reps" or "3x10")'
                ),
                session=session,
            )

        return WorkoutTurn(
            message=(
                "How's the workout going? Tell me what exercise you just finished, "
                'with sets and reps if you have them (e.g., "squat 3x8 @ 80kg").'
            ),
            session=session,
        )

    def _finish(self, session: WorkoutSession) -> WorkoutTurn:
        logged = session.exercises_logged
        logger.info("Ended workout session %s with %d exercises", session.session_id, len(logged))
        if not logged:
            return WorkoutTurn(
                message="Workout ended. No exercises logged this time - see you next session!",
                session=None,
            )
        lines = "\n".join(f"- {_format_entry(entry)}" for entry in logged)
        return WorkoutTurn(
            message=f"Great session! Here's what you logged:\n{lines}\n\nRest up and recover well!",
            session=None,
        )
