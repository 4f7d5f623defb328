"""Guided onboarding: collect the minimum profile through a fixed question sequence.

Step order:
    name -> has_timetable -> [current_timetable] -> gym_time -> height -> weight
    -> training_philosophy -> [suggest_timetable] -> confirm_schedule -> complete

current_timetable is only asked after a "yes" to has_timetable,
suggest_timetable only after a "no". Each step runs one extractor on the
answer; when it finds nothing the step is repeated with a hint. A "no" at
confirm_schedule clears everything and restarts at name. A "yes" creates
the profile and ends onboarding.
"""

import logging
from dataclasses import dataclass, field, replace

from fitbuddy.agent.context import OnboardingData, OnboardingSession, OnboardingStep
from fitbuddy.agent.extractors import TRAINING_PHILOSOPHIES, HeuristicExtractor, calculate_bmi
from fitbuddy.memory.profile import ProfileStore, ProfileStoreError, build_profile_from_onboarding

logger = logging.getLogger(__name__)

ONBOARDING_GREETING = (
    "Welcome to Fit Buddy! I'm your AI fitness companion, and I'm here to be your "
    "workout partner. Let's get to know each other so I can help you reach your "
    "fitness goals!\n\nFirst things first - what's your name?"
)

GYM_TIME_QUESTION = (
    'What time do you usually go to the gym, or what time would you prefer? '
    '(e.g., "6 AM", "evening", "after work")'
)

PHILOSOPHY_QUESTION = (
    "Now, I'd like to know your training philosophy. Do you prefer:\n"
    "1. Arnold's approach - High volume, multiple sets and exercises per muscle group\n"
    "2. Mike Mentzer's approach - High intensity, low volume, training to failure\n"
    "3. Not sure / Balanced - A mix of both approaches\n\n"
    "Just tell me which number or the name!"
)

# Re-prompts used when the answer to a step cannot be parsed
REPROMPTS = {
    OnboardingStep.NAME: "I'd love to know your name! Could you tell me what you'd like me to call you?",
    OnboardingStep.HAS_TIMETABLE: 'Please let me know - do you have a current workout timetable? Answer "yes" or "no".',
    OnboardingStep.CURRENT_TIMETABLE: "Could you describe your current schedule? Which days do you train and what do you do?",
    OnboardingStep.GYM_TIME: (
        "I need to know your preferred gym time to send you timely reminders. "
        'When do you usually go or would like to go? (e.g., "6 AM", "7 PM", "evening")'
    ),
    OnboardingStep.HEIGHT: (
        "I need your height to calculate your BMI and give you personalized recommendations. "
        'Can you tell me your height? (e.g., "175 cm" or "5 feet 9 inches")'
    ),
    OnboardingStep.WEIGHT: (
        "I need your weight to calculate your BMI. "
        'Can you tell me your current weight? (e.g., "70 kg" or "154 lbs")'
    ),
    OnboardingStep.TRAINING_PHILOSOPHY: (
        "Please choose your training philosophy:\n"
        "1. Arnold's approach (high volume)\n"
        "2. Mike Mentzer's approach (high intensity)\n"
        "3. Not sure / Balanced"
    ),
    OnboardingStep.SUGGEST_TIMETABLE: 'Would you like a 3-day plan or a full week plan? Just say "3 days" or "1 week".',
    OnboardingStep.CONFIRM_SCHEDULE: 'Please confirm - does everything look correct? Say "yes" or "no".',
}

# Quick replies offered to the front-end for closed questions
QUICK_REPLIES = {
    OnboardingStep.HAS_TIMETABLE: ["Yes", "No"],
    OnboardingStep.TRAINING_PHILOSOPHY: ["1. Arnold", "2. Mentzer", "3. Balanced"],
    OnboardingStep.SUGGEST_TIMETABLE: ["3 days", "1 week"],
    OnboardingStep.CONFIRM_SCHEDULE: ["Yes", "No"],
}


@dataclass(frozen=True)
class StepResult:
    """Outcome of one onboarding answer.

    success is False when the answer could not be used; state is then
    unchanged and message re-asks the question.
    """
    success: bool
    message: str
    state: OnboardingSession
    next_step: OnboardingStep | None = None
    user_created: bool = False
    profile: dict | None = field(default=None, compare=False)


def _philosophy_label(philosophy: str | None) -> str:
    return TRAINING_PHILOSOPHIES.get(philosophy or "custom", "Balanced")


def _summary(data: OnboardingData) -> str:
    lines = [f"- Name: {data.name}"]
    if data.has_timetable:
        lines.append(f"- Current Schedule: {data.current_timetable}")
    lines.append(f"- Gym Time: {data.gym_time}")
    lines.append(f"- Height: {data.height} cm")
    lines.append(f"- Weight: {data.weight} kg")
    if data.bmi is not None:
        lines.append(f"- BMI: {data.bmi:.1f}")
    lines.append(f"- Training Philosophy: {_philosophy_label(data.training_philosophy)}")
    if data.suggested_timetable:
        lines.append(f"- Workout Plan: {data.suggested_timetable}")
    return "\n".join(lines)


class OnboardingFlow:
    """Onboarding state machine; creates the profile on confirmation."""

    def __init__(self, profiles: ProfileStore, extractor: HeuristicExtractor | None = None):
        self.profiles = profiles
        self.extract = extractor or HeuristicExtractor()
        self._handlers = {
            OnboardingStep.NAME: self._name,
            OnboardingStep.HAS_TIMETABLE: self._has_timetable,
            OnboardingStep.CURRENT_TIMETABLE: self._current_timetable,
            OnboardingStep.GYM_TIME: self._gym_time,
            OnboardingStep.HEIGHT: self._height,
            OnboardingStep.WEIGHT: self._weight,
            OnboardingStep.TRAINING_PHILOSOPHY: self._training_philosophy,
            OnboardingStep.SUGGEST_TIMETABLE: self._suggest_timetable,
            OnboardingStep.CONFIRM_SCHEDULE: self._confirm_schedule,
        }

    def greeting(self) -> str:
        return ONBOARDING_GREETING

    def process_step(
        self,
        step: OnboardingStep,
        answer: str,
        state: OnboardingSession,
        external_id: str,
    ) -> StepResult:
        """Apply one answer to the current step and return the next prompt."""
        handler = self._handlers.get(step)
        if handler is None:
            return StepResult(
                success=False,
                message="I'm not sure what step we're on. Let's start over - what's your name?",
                state=OnboardingSession(),
                next_step=OnboardingStep.NAME,
            )
        return handler(answer, state, external_id)

    # ── helpers ──────────────────────────────────────────────────

    def _retry(self, state: OnboardingSession) -> StepResult:
        return StepResult(success=False, message=REPROMPTS[state.step], state=state)

    def _advance(
        self, state: OnboardingSession, next_step: OnboardingStep, message: str, **updates
    ) -> StepResult:
        data = replace(state.data, **updates)
        return StepResult(
            success=True,
            message=message,
            state=OnboardingSession(step=next_step, data=data),
            next_step=next_step,
        )

    # ── steps ────────────────────────────────────────────────────

    def _name(self, answer, state, external_id):
        name = self.extract.name(answer)
        if not name:
            return self._retry(state)
        return self._advance(
            state,
            OnboardingStep.HAS_TIMETABLE,
            f"Nice to meet you, {name}!\n\nDo you currently follow a workout timetable "
            'or schedule? Please answer with "yes" or "no".',
            name=name,
        )

    def _has_timetable(self, answer, state, external_id):
        has_timetable = self.extract.parse_yes_no(answer)
        if has_timetable is None:
            return self._retry(state)
        if has_timetable:
            return self._advance(
                state,
                OnboardingStep.CURRENT_TIMETABLE,
                "Great! Tell me about your current workout schedule - which days do you "
                'work out and what do you do? For example: "Monday, Wednesday, Friday - '
                'Upper body, Lower body, Full body"',
                has_timetable=True,
            )
        return self._advance(
            state,
            OnboardingStep.GYM_TIME,
            "No problem! We'll work together to create one that fits your schedule. "
            f"First, {GYM_TIME_QUESTION[0].lower()}{GYM_TIME_QUESTION[1:]}",
            has_timetable=False,
        )

    def _current_timetable(self, answer, state, external_id):
        timetable = answer.strip()
        if not timetable:
            return self._retry(state)
        return self._advance(
            state,
            OnboardingStep.GYM_TIME,
            f"Got it! I've noted your current schedule: {timetable}\n\n{GYM_TIME_QUESTION}",
            current_timetable=timetable,
        )

    def _gym_time(self, answer, state, external_id):
        gym_time = self.extract.time(answer)
        if not gym_time:
            return self._retry(state)
        return self._advance(
            state,
            OnboardingStep.HEIGHT,
            f"Perfect! I'll make sure to check in with you around {gym_time}.\n\n"
            "Now, what's your height? (You can tell me in cm or feet/inches, "
            'like "175 cm" or "5\'9")',
            gym_time=gym_time,
        )

    def _height(self, answer, state, external_id):
        height = self.extract.height(answer)
        if not height:
            return self._retry(state)
        return self._advance(
            state,
            OnboardingStep.WEIGHT,
            f"Got it! {height} cm. Now, what's your current weight? "
            '(You can tell me in kg or lbs, like "70 kg" or "154 lbs")',
            height=height,
        )

    def _weight(self, answer, state, external_id):
        weight = self.extract.weight(answer)
        if not weight:
            return self._retry(state)
        bmi = calculate_bmi(weight, state.data.height) if state.data.height else None
        bmi_text = f"Your BMI is {bmi:.1f}.\n\n" if bmi is not None else ""
        return self._advance(
            state,
            OnboardingStep.TRAINING_PHILOSOPHY,
            f"Perfect! {bmi_text}{PHILOSOPHY_QUESTION}",
            weight=weight,
            bmi=bmi,
        )

    def _training_philosophy(self, answer, state, external_id):
        philosophy = self.extract.training_philosophy(answer)
        if not philosophy:
            return self._retry(state)
        if not state.data.has_timetable:
            return self._advance(
                state,
                OnboardingStep.SUGGEST_TIMETABLE,
                f"Great choice! {_philosophy_label(philosophy)} it is!\n\n"
                "Since you don't have a current timetable, would you like me to suggest "
                'a 3-day plan or a full week plan? Just say "3 days" or "1 week".',
                training_philosophy=philosophy,
            )
        data = replace(state.data, training_philosophy=philosophy)
        return self._advance(
            state,
            OnboardingStep.CONFIRM_SCHEDULE,
            "Perfect! I've got all your information. Let me confirm what I have:\n\n"
            f"{_summary(data)}\n\n"
            'Does this look correct? Say "yes" to continue or "no" to make changes.',
            training_philosophy=philosophy,
        )

    def _suggest_timetable(self, answer, state, external_id):
        days = self.extract.plan_size(answer)
        if not days:
            return self._retry(state)
        if days == 3:
            suggested = "3-day split (e.g., Monday, Wednesday, Friday)"
        else:
            suggested = "6-day split (e.g., Monday-Saturday)"
        data = replace(state.data, workout_days_per_week=days, suggested_timetable=suggested)
        return self._advance(
            state,
            OnboardingStep.CONFIRM_SCHEDULE,
            f"Excellent! I'll create a {days}-day workout plan for you.\n\n"
            f"Let me confirm what I have:\n\n{_summary(data)}\n\n"
            'Does this look correct? Say "yes" to finish setup or "no" to make changes.',
            workout_days_per_week=days,
            suggested_timetable=suggested,
        )

    def _confirm_schedule(self, answer, state, external_id):
        confirmed = self.extract.parse_yes_no(answer)
        if confirmed is None:
            return self._retry(state)

        if not confirmed:
            # Full restart rather than correcting a single field
            return StepResult(
                success=True,
                message="No problem! Let's go through it again. What's your name?",
                state=OnboardingSession(),
                next_step=OnboardingStep.NAME,
            )

        try:
            profile = self.profiles.create(build_profile_from_onboarding(external_id, state.data))
        except ProfileStoreError as e:
            logger.warning("Profile creation failed for %s: %s", external_id, e)
            return StepResult(
                success=False,
                message="I had trouble saving your profile. Let me try again - "
                        "can you confirm everything is correct?",
                state=state,
            )

        return StepResult(
            success=True,
            message=(
                "Perfect! Your profile is all set up!\n\n"
                f"I'll be your fitness partner and check in with you at {state.data.gym_time}. "
                "When you're at the gym, just let me know and I'll help you track your "
                "workouts!\n\nYou can start by saying \"I'm at the gym\" when you're ready "
                "to work out, or ask me anything about fitness!"
            ),
            state=OnboardingSession(step=OnboardingStep.COMPLETE, data=state.data),
            next_step=OnboardingStep.COMPLETE,
            user_created=True,
            profile=profile,
        )
