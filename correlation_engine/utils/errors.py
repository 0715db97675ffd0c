"""Exception hierarchy for the correlation engine.

Every application error inherits from :class:`CorrelationEngineError`,
which carries an optional ``provider_name`` naming the backend that
failed (e.g. "sqlite_report_store").

    CorrelationEngineError  (base)
    +-- StoreError           (report store query or mutation failed)
    +-- BatchError           (a batch run could not start or finish)
    +-- ConfigurationError   (invalid or missing configuration)

Per-report failures inside a batch are caught by the batch runner and
counted; only :class:`BatchError` and :class:`ConfigurationError` reach
the HTTP layer.
"""


class CorrelationEngineError(Exception):
    """Base exception for all correlation engine errors.

    ``__str__`` prefixes the provider name in brackets, e.g.
    ``[sqlite_report_store] database is locked``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


class StoreError(CorrelationEngineError):
    """Raised when a report store query or mutation fails."""

    def __init__(
        self,
        message: str = "Report store operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class BatchError(CorrelationEngineError):
    """Raised when a batch run fails before per-report processing begins."""

    def __init__(
        self,
        message: str = "Connection batch failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(CorrelationEngineError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
