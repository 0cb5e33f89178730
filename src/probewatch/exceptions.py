"""Domain errors raised by the probing engine and uptime aggregator."""


class ProbewatchError(Exception):
    """Base exception for all engine errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(ProbewatchError, ValueError):
    """A request that cannot be served as configured (client error)."""


class EntityNotFoundError(ConfigurationError):
    """No platform, app or component exists with the requested id."""


class EntityNotCheckableError(ConfigurationError):
    """The entity exists but has no check that can be run on its own."""


class UptimeDateError(ConfigurationError):
    """Uptime was requested for a day that has not fully elapsed."""


class AggregationError(ProbewatchError):
    """Minute buckets did not add up to the length of the day."""
