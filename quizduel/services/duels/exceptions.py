"""Duel domain exceptions."""
from quizduel.utils.exceptions import QuizDuelException


class DuelError(QuizDuelException):
    """Base exception for duel errors."""
    pass


class DuelNotFoundError(DuelError):
    """Raised when a duel cannot be found by id or join code."""
    pass


class DuelForbiddenError(DuelError):
    """Raised when the caller is not allowed to act on the duel."""
    pass


class NotCreatorError(DuelForbiddenError):
    """Raised when a non-creator tries to perform a creator-only action."""
    pass


class NotParticipantError(DuelForbiddenError):
    """Raised when the caller is not a participant of the duel."""
    pass


class InvalidDuelStateError(DuelError):
    """Raised when the duel status does not allow the requested transition."""
    pass


class AlreadySubmittedError(InvalidDuelStateError):
    """Raised when a participant submits answers a second time."""
    pass


class DuelFullError(DuelError):
    """Raised when joining a lobby that has no free seat."""
    pass


class DuelExpiredError(DuelError):
    """Raised when joining a lobby past its expiry time."""
    pass


class InsufficientFundsError(DuelError):
    """Raised when the caller cannot cover the duel stake."""

    def __init__(self, required: int, available: int):
        self.required = required
        self.available = available
        super().__init__(
            f"Not enough stars. Required: {required}, available: {available}"
        )


class InsufficientContentError(DuelError):
    """Raised when too few questions qualify for a round."""

    def __init__(self, found: int, required: int):
        self.found = found
        self.required = required
        super().__init__(
            f"Not enough questions for this difficulty. Found: {found}/{required}"
        )


class InvalidDuelConfigError(DuelError):
    """Raised when a duel is created with an unsupported configuration."""
    pass


class CodeAllocationError(DuelError):
    """Raised when no free join code could be drawn."""
    pass
