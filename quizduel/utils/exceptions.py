"""Base exceptions shared across services."""


class QuizDuelException(Exception):
    """Base exception for all domain errors raised by services."""
    pass


class UserNotFoundError(QuizDuelException):
    """Raised when a balance change targets a user that does not exist."""
    pass


class InsufficientBalanceError(QuizDuelException):
    """Raised when a star debit would drive a balance negative."""
    pass
