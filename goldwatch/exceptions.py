"""
Error taxonomy for the price pipeline and notification engine.
"""

from typing import Optional


class GoldWatchError(Exception):
    """Base class for all application errors."""

    pass


class SourceFetchError(GoldWatchError):
    """A single price source failed (timeout, transport, parse)."""

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"{source}: {reason}")


class ValidationError(SourceFetchError):
    """A source produced values that fail snapshot invariants."""

    pass


class AggregateFailureError(GoldWatchError):
    """Every attempted source failed in one fetch cycle."""

    def __init__(self, errors: dict[str, SourceFetchError]):
        self.errors = errors
        details = "; ".join(str(e) for e in errors.values()) or "no sources attempted"
        super().__init__(f"All price sources failed: {details}")

    def as_dict(self) -> dict[str, str]:
        """Source name to failure reason, in attempt order."""
        return {name: err.reason for name, err in self.errors.items()}


class ChannelSendError(GoldWatchError):
    """A notification channel could not deliver a message."""

    def __init__(self, channel: str, reason: str):
        self.channel = channel
        self.reason = reason
        super().__init__(f"{channel}: {reason}")


class PersistenceError(GoldWatchError):
    """Storage layer fault."""

    def __init__(self, message: str, cause: Optional[Exception] = None):
        self.cause = cause
        super().__init__(message)


class AlertValidationError(ValueError):
    """Alert fields do not form a valid alert."""

    pass


class InvestmentValidationError(ValueError):
    """Investment fields are out of range."""

    pass
