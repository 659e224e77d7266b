"""Exceptions raised by FareMarket services."""


class FareMarketError(Exception):
    """Base exception for FareMarket service errors."""
    pass


class ValidationError(FareMarketError):
    """Raised when input is malformed or missing."""
    pass


class InvalidStateError(FareMarketError):
    """Raised when the record's current status forbids the operation."""
    pass


class AlreadyMatchedError(InvalidStateError):
    """Raised when another acceptance already matched the ride request."""
    pass


class TerminalStateError(InvalidStateError):
    """Raised when the record is completed or cancelled."""
    pass


class ForbiddenError(FareMarketError):
    """Raised when the actor lacks the verification or permission required."""
    pass


class NotFoundError(FareMarketError):
    """Raised when a referenced record does not exist."""
    pass


class CollaboratorUnavailableError(FareMarketError):
    """Raised when an external collaborator cannot be reached or fails.

    This is never a business-rule rejection; callers should suggest a retry.
    """
    pass


class StatusConflictError(Exception):
    """Raised by the store client when a conditional update finds another status."""

    def __init__(self, message, current=None):
        super().__init__(message)
        self.current = current or {}
