"""Exporter exceptions with operator-ready messages."""


class ConfigurationError(Exception):
    """Raised when the exporter configuration is invalid.

    Startup is all-or-nothing, so validation collects every problem it
    finds and reports them together in ``errors``.
    """

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        self.errors = errors if errors is not None else [message]
        super().__init__(message)

    @classmethod
    def from_errors(cls, errors: list[str]) -> "ConfigurationError":
        return cls(
            "Configuration validation failed:\n  - " + "\n  - ".join(errors),
            errors=errors,
        )


class InvalidFrequency(ConfigurationError):
    """Raised when a metric frequency string cannot be parsed."""

    def __init__(self, frequency: str, reason: str) -> None:
        self.frequency = frequency
        super().__init__(f"Invalid frequency {frequency!r}: {reason}")


class DuplicateMetricName(ConfigurationError):
    """Raised when a metric name is registered twice with different kinds."""

    def __init__(self, name: str, detail: str) -> None:
        self.name = name
        super().__init__(f"Metric {name!r} {detail}")


class UnknownDriver(ConfigurationError):
    """Raised when no executor can be built for a database driver."""

    def __init__(self, driver: str, cause: str) -> None:
        self.driver = driver
        super().__init__(f"Cannot use database driver {driver!r}: {cause}")


class UnknownMetricError(LookupError):
    """Raised when the registry is asked about a name it never registered."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Metric {name!r} is not registered")


class ExecutionError(Exception):
    """Base exception for a single failed query execution."""

    def __init__(self, message: str, error_code: str) -> None:
        self.message = message
        self.error_code = error_code
        super().__init__(message)


class DatabaseConnectionError(ExecutionError):
    """The database could not be reached or the connection was lost."""

    def __init__(self, message: str) -> None:
        super().__init__(message, error_code="CONNECTION_FAILED")


class QueryError(ExecutionError):
    """The backend rejected the query or its result could not be used."""

    def __init__(self, message: str) -> None:
        super().__init__(message, error_code="QUERY_FAILED")
