"""Conversation orchestrator: decides which flow owns each inbound message.

Dispatch order for a turn, first match wins:
    1. active onboarding in the caller's context   -> OnboardingFlow
    2. unknown platform id                          -> start onboarding
    3. pending schedule confirmation                -> ScheduleNegotiator.resolve
    4. message states a different gym time          -> ScheduleNegotiator.detect (stage)
    5. workout activity or gym-entry phrase         -> WorkoutTracker
    6. anything else                                -> intent classification + LLM chat

Each turn runs under the per-user lock of the conversation store and saves
the conversation at most once. Failures never escape process(): they become
a TurnResult with a user-facing apology.
"""

import base64
import logging
from dataclasses import dataclass, field

from fitbuddy.agent.context import (
    Activity,
    ConversationContext,
    OnboardingSession,
    OnboardingStep,
    ScheduleChangeSession,
    onboarding_context,
)
from fitbuddy.agent.errors import InvariantError, UserNotFoundError
from fitbuddy.agent.extractors import HeuristicExtractor, bmi_category
from fitbuddy.agent.intent import classify, is_workout_trigger
from fitbuddy.agent.llm import LLMError, RateLimitError, complete, describe_image
from fitbuddy.agent.onboarding import QUICK_REPLIES, OnboardingFlow
from fitbuddy.agent.schedule import ScheduleNegotiator
from fitbuddy.agent.workout import WorkoutTracker
from fitbuddy.memory.conversations import Conversation, ConversationStore, Message, PersistenceError
from fitbuddy.memory.profile import DATA_DIR, ProfileStore, is_internal_id

logger = logging.getLogger(__name__)

# Only the most recent messages are sent to the LLM
HISTORY_WINDOW = 10
CHAT_TEMPERATURE = 0.8
CHAT_MAX_TOKENS = 500

SYSTEM_PROMPT = """\
You are Fit Buddy, a friendly and knowledgeable AI fitness companion. Your personality is:

- Conversational and natural (never robotic or scripted)
- Supportive and motivational without being pushy
- Knowledgeable about fitness, nutrition, and local food culture
- Able to use humor when appropriate (if the user has humor enabled)
- Focused on helping users achieve their fitness goals

Key behaviors:
- Always respond in a conversational, human-like manner
- Ask follow-up questions to gather information naturally
- Provide specific, actionable advice
- Adapt your communication style to the user's preferences
- Be encouraging but realistic about fitness goals

Remember: you're having a conversation with someone who wants to improve their fitness journey.
"""

FOOD_ANALYSIS_PROMPT = """\
Analyze this food image for a fitness app user.

Please identify:
1. All food items visible
2. Estimated portion sizes
3. Approximate calories for each item
4. Total estimated calories
5. Any local food names if applicable

Respond in a conversational way as if talking to the user directly.
Be encouraging about their food tracking efforts.
"""

ACTIVITY_SUGGESTIONS = {
    Activity.ONBOARDING: [
        "Tell me about your fitness goals",
        "What's your workout experience?",
        "Help me plan my schedule",
    ],
    Activity.WORKOUT: [
        "I'm at the gym",
        "Log my workout",
        "What exercise should I do next?",
    ],
    Activity.MEAL_PLANNING: [
        "Plan my meals for today",
        "Analyze this food photo",
        "What should I eat for breakfast?",
    ],
    Activity.GYM_SEARCH: [
        "Find gyms near me",
        "Show me standard quality gyms",
        "Add a new gym location",
    ],
}
DEFAULT_SUGGESTIONS = ["Plan my workout", "Help with nutrition", "Find a gym", "Track my progress"]

RESTART_MESSAGE = "I need to set up your profile first. Please send /start to begin!"
EMPTY_REPLY = "I apologize, but I couldn't generate a response. Please try again."
RATE_LIMITED_REPLY = "I need a moment to think. Please try again in a few seconds!"
AI_UNREACHABLE_REPLY = "I'm having trouble connecting to my AI service. Please try again in a moment!"
DATABASE_REPLY = "I'm having database issues. Please try again in a moment!"
GENERIC_REPLY = "I'm having trouble understanding right now. Could you try rephrasing that?"
IMAGE_FALLBACK_REPLY = (
    "I'm having trouble analyzing that image. Could you describe what you're eating instead?"
)

# Appended to LLM failure replies so the user keeps going with the current activity
ACTIVITY_FALLBACK_HINTS = {
    Activity.WORKOUT: "Meanwhile, keep logging your sets - I'm still tracking them.",
    Activity.MEAL_PLANNING: "Meanwhile, you can tell me what you ate and I'll note it.",
    Activity.GYM_SEARCH: "Meanwhile, let me know which area you'd like to train in.",
}


@dataclass
class TurnResult:
    """Reply for one inbound message.

    success=False marks a turn that was handled with a fallback; retryable
    tells the front-end the same message may succeed later.
    """
    message: str
    context: ConversationContext
    suggestions: list[str] = field(default_factory=list)
    success: bool = True
    error_code: str | None = None
    retryable: bool = False
    metadata: dict = field(default_factory=dict)


def generate_suggestions(activity: Activity | None) -> list[str]:
    return list(ACTIVITY_SUGGESTIONS.get(activity, DEFAULT_SUGGESTIONS))


def build_system_prompt(profile: dict | None, activity: Activity | None) -> str:
    """System prompt enriched with the user's profile and current activity."""
    prompt = SYSTEM_PROMPT
    if profile:
        details = profile.get("profile", {})
        preferences = profile.get("preferences", {})
        prompt += (
            "\nUser Profile Context:\n"
            f"- Name: {details.get('name') or 'User'}\n"
            f"- Fitness Goal: {details.get('fitness_goal') or 'Not set'}\n"
            f"- Training Philosophy: {details.get('training_philosophy') or 'Not set'}\n"
            f"- Experience Level: {details.get('experience_level') or 'Not set'}\n"
            f"- BMI Category: {bmi_category(details.get('bmi'))}\n"
            f"- Conversation Style: {preferences.get('conversation_style') or 'casual'}\n"
            f"- Humor Enabled: {'Yes' if preferences.get('humor_enabled') else 'No'}\n"
        )
    if activity is not None and activity is not Activity.NONE:
        prompt += (
            f"\nCurrent Activity: {activity.value}\n"
            "Adjust your responses to be relevant to this activity.\n"
        )
    return prompt


def _with_hint(reply: str, activity: Activity | None) -> str:
    hint = ACTIVITY_FALLBACK_HINTS.get(activity)
    return f"{reply} {hint}" if hint else reply


def _apology_for(error: Exception) -> str:
    """Pick a user-facing apology from the error text."""
    text = f"{type(error).__name__} {error}".lower()
    if any(word in text for word in ("database", "persist", "storage", "profile")):
        return DATABASE_REPLY
    if any(word in text for word in ("ai service", "llm", "gemini")):
        return AI_UNREACHABLE_REPLY
    return GENERIC_REPLY


class ConversationOrchestrator:
    """Routes each message to onboarding, negotiation, workout, or chat."""

    def __init__(
        self,
        profiles: ProfileStore | None = None,
        conversations: ConversationStore | None = None,
        extractor: HeuristicExtractor | None = None,
    ):
        self.profiles = profiles or ProfileStore()
        self.conversations = conversations or ConversationStore(DATA_DIR)
        extractor = extractor or HeuristicExtractor()
        self.onboarding = OnboardingFlow(self.profiles, extractor)
        self.negotiator = ScheduleNegotiator(self.profiles, extractor)
        self.tracker = WorkoutTracker(extractor)

    # ── Public API ───────────────────────────────────────────────

    def process(
        self, user_id: str, message: str, context: ConversationContext | None = None
    ) -> TurnResult:
        """Handle one inbound message and return the reply, new context and suggestions."""
        context = context or ConversationContext()
        try:
            with self.conversations.user_lock(self._lock_key(user_id, context)):
                return self._process_turn(user_id, message, context)
        except UserNotFoundError as e:
            logger.warning("%s", e)
            return TurnResult(
                message=RESTART_MESSAGE,
                context=context,
                success=False,
                error_code="USER_NOT_FOUND",
            )
        except Exception as e:
            logger.exception("Error processing message for %s", user_id)
            return TurnResult(
                message=_apology_for(e),
                context=context,
                success=False,
                error_code="MESSAGE_PROCESSING_ERROR",
                retryable=not isinstance(e, InvariantError),
            )

    def start_onboarding(self) -> TurnResult:
        """Welcome prompt plus a fresh onboarding context at step name."""
        return TurnResult(
            message=self.onboarding.greeting(),
            context=onboarding_context(),
            metadata={"onboarding_step": OnboardingStep.NAME.value},
        )

    def analyze_image(
        self,
        user_id: str,
        image_bytes: bytes,
        context: ConversationContext | None = None,
        mime_type: str = "image/jpeg",
    ) -> TurnResult:
        """Describe a food photo via the LLM vision mode."""
        context = context or ConversationContext()
        encoded = base64.b64encode(image_bytes).decode("ascii")
        try:
            text = describe_image(encoded, FOOD_ANALYSIS_PROMPT, mime_type=mime_type)
        except LLMError as e:
            logger.warning("Image analysis failed for %s: %s", user_id, e)
            return TurnResult(
                message=IMAGE_FALLBACK_REPLY,
                context=context,
                success=False,
                error_code="IMAGE_ANALYSIS_ERROR",
                retryable=True,
            )
        return TurnResult(
            message=text or IMAGE_FALLBACK_REPLY,
            context=context,
            suggestions=generate_suggestions(Activity.MEAL_PLANNING),
        )

    def get_conversation_history(self, user_id: str, limit: int = 50) -> list[Message]:
        """Most recent messages for a user; empty when the user is unknown."""
        profile = self.profiles.resolve(user_id)
        if profile is None or not profile.get("id"):
            return []
        try:
            return self.conversations.history(profile["id"], limit)
        except PersistenceError as e:
            logger.warning("History unavailable for %s: %s", user_id, e)
            return []

    # ── Turn pipeline ────────────────────────────────────────────

    def _lock_key(self, user_id: str, context: ConversationContext) -> str:
        """Profile id for a known user so both of their identities share one lock."""
        onboarding = context.onboarding
        if onboarding is not None and onboarding.step is not OnboardingStep.COMPLETE:
            return user_id
        profile = self.profiles.resolve(user_id)
        if profile and profile.get("id"):
            return profile["id"]
        return user_id

    def _process_turn(self, user_id: str, message: str, context: ConversationContext) -> TurnResult:
        onboarding = context.onboarding
        if onboarding is not None and onboarding.step is not OnboardingStep.COMPLETE:
            return self._handle_onboarding(user_id, message, context, onboarding)

        profile = self.profiles.resolve(user_id)
        if profile is None:
            if is_internal_id(user_id):
                raise UserNotFoundError(user_id)
            return self.start_onboarding()

        profile_id = profile.get("id")
        if not profile_id:
            raise InvariantError(f"Resolved profile for {user_id} has no id")

        conversation = self._load_conversation(profile_id, context)
        result, record = self._dispatch(profile, conversation, message)

        if record:
            conversation.append("user", message)
            meta = None
            if not result.success:
                meta = {"failed": True, "error_code": result.error_code}
            conversation.append("assistant", result.message, metadata=meta)
            conversation.context = result.context
            self._save(conversation)

        result.metadata.setdefault("conversation_id", conversation.id)
        result.metadata.setdefault("message_count", len(conversation.messages))
        return result

    def _load_conversation(self, profile_id: str, prior: ConversationContext) -> Conversation:
        # A finished onboarding context is discarded once the profile exists
        initial = ConversationContext() if prior.onboarding is not None else prior
        try:
            return self.conversations.get_or_create(profile_id, initial)
        except PersistenceError as e:
            logger.warning("Conversation store unavailable, continuing in memory: %s", e)
            return Conversation(user_id=profile_id, context=initial)

    def _save(self, conversation: Conversation) -> None:
        try:
            self.conversations.upsert(conversation)
        except PersistenceError as e:
            logger.warning("Conversation %s not persisted: %s", conversation.id, e)

    def _dispatch(
        self, profile: dict, conversation: Conversation, message: str
    ) -> tuple[TurnResult, bool]:
        """Run the owning flow. The bool says whether the turn is recorded."""
        context = conversation.context

        pending = context.pending_schedule_change
        if pending is not None:
            return self._handle_schedule_reply(message, pending, profile, context)

        staged = self.negotiator.detect(message, profile, suspended=context.workout)
        if staged is not None:
            return TurnResult(
                message=self.negotiator.confirmation_prompt(staged),
                context=context.with_session(staged).touch(),
                suggestions=["Yes", "No"],
                metadata={"schedule_change_pending": True},
            ), True

        if self._is_workout_turn(message, context):
            return self._handle_workout(message, context)

        return self._handle_chat(message, profile, conversation)

    # ── Flows ────────────────────────────────────────────────────

    def _handle_onboarding(
        self,
        user_id: str,
        message: str,
        context: ConversationContext,
        onboarding: OnboardingSession,
    ) -> TurnResult:
        result = self.onboarding.process_step(onboarding.step, message, onboarding, external_id=user_id)
        metadata = {
            "onboarding_step": result.state.step.value,
            "answer_accepted": result.success,
            "user_created": result.user_created,
        }
        if result.profile:
            metadata["user_id"] = result.profile["id"]
        return TurnResult(
            message=result.message,
            context=context.with_session(result.state).touch(),
            suggestions=list(QUICK_REPLIES.get(result.state.step, [])),
            metadata=metadata,
        )

    def _handle_schedule_reply(
        self,
        message: str,
        pending: ScheduleChangeSession,
        profile: dict,
        context: ConversationContext,
    ) -> tuple[TurnResult, bool]:
        resolution = self.negotiator.resolve(message, pending, profile)
        if not resolution.resolved and resolution.error_code is None:
            return TurnResult(
                message=resolution.message,
                context=context,
                suggestions=["Yes", "No"],
                metadata={"schedule_change_pending": True},
            ), False

        new_context = context.with_session(resolution.session).touch()
        return TurnResult(
            message=resolution.message,
            context=new_context,
            suggestions=generate_suggestions(new_context.activity),
            success=resolution.error_code is None,
            error_code=resolution.error_code,
            retryable=resolution.error_code is not None,
            metadata={
                "schedule_change_pending": not resolution.resolved,
                "schedule_updated": resolution.committed,
            },
        ), True

    def _is_workout_turn(self, message: str, context: ConversationContext) -> bool:
        if is_workout_trigger(message):
            return True
        # Staying in workout mode until the message clearly belongs elsewhere
        return (
            context.activity is Activity.WORKOUT
            and classify(message, Activity.WORKOUT) is Activity.WORKOUT
        )

    def _handle_workout(self, message: str, context: ConversationContext) -> tuple[TurnResult, bool]:
        session = context.workout
        if session is None or is_workout_trigger(message):
            turn = self.tracker.start(session)
        else:
            turn = self.tracker.handle(message, session)

        if turn.ended:
            new_context = context.with_activity(Activity.NONE)
        else:
            new_context = context.with_session(turn.session)
        new_context = new_context.touch()

        return TurnResult(
            message=turn.message,
            context=new_context,
            suggestions=generate_suggestions(new_context.activity),
            metadata={
                "workout_session_active": not turn.ended,
                "exercise_logged": turn.logged is not None,
            },
        ), True

    def _handle_chat(
        self, message: str, profile: dict, conversation: Conversation
    ) -> tuple[TurnResult, bool]:
        context = conversation.context
        activity = classify(message, context.activity)
        new_context = (
            context.with_activity(activity)
            .with_preferences(profile.get("preferences"))
            .touch()
        )

        history = [*conversation.recent(HISTORY_WINDOW - 1), Message(role="user", content=message)]
        llm_messages = [{"role": "system", "content": build_system_prompt(profile, activity)}]
        llm_messages.extend({"role": m.role, "content": m.content} for m in history)

        suggestions = generate_suggestions(activity)
        metadata = {"current_activity": activity.value if activity else None}

        try:
            text = complete(llm_messages, temperature=CHAT_TEMPERATURE, max_tokens=CHAT_MAX_TOKENS)
        except RateLimitError:
            return TurnResult(
                message=_with_hint(RATE_LIMITED_REPLY, activity),
                context=new_context,
                suggestions=suggestions,
                success=False,
                error_code="AI_RATE_LIMITED",
                retryable=True,
                metadata=metadata,
            ), True
        except LLMError:
            return TurnResult(
                message=_with_hint(AI_UNREACHABLE_REPLY, activity),
                context=new_context,
                suggestions=suggestions,
                success=False,
                error_code="AI_UNAVAILABLE",
                retryable=True,
                metadata=metadata,
            ), True

        return TurnResult(
            message=text or EMPTY_REPLY,
            context=new_context,
            suggestions=suggestions,
            metadata=metadata,
        ), True
