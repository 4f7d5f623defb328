"""Error types raised inside a conversation turn.

The orchestrator catches these at the turn boundary and converts them into a
user-facing reply; they never leave ConversationOrchestrator.process().
"""


class FitBuddyError(Exception):
    """Base exception for conversation errors."""


class UserNotFoundError(FitBuddyError):
    """Raised when an internal user id does not resolve to a profile."""

    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        super().__init__(f"User not found: {user_id}")


class InvariantError(FitBuddyError):
    """Raised when internal state is inconsistent (fatal for the turn)."""
