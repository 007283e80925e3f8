from typing import Optional, Dict, Any


class CloudOptimizerException(Exception):
    """Base exception for all CloudOptimizer errors."""
    def __init__(
        self,
        message: str,
        code: str = "internal_error",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}


class UnknownProviderError(CloudOptimizerException):
    """Raised when no cost data source is registered for a provider. Aborts the analysis."""
    def __init__(self, provider: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            f"No cost data source registered for provider '{provider}'",
            code="unknown_provider",
            details={"provider": provider, **(details or {})}
        )
        self.provider = provider


class InvalidResourceError(CloudOptimizerException):
    """Raised when a resource identifier is blank or malformed."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="invalid_resource", details=details)


class UpstreamUnavailableError(CloudOptimizerException):
    """
    Raised by data sources and backends when pricing, metrics or cost data
    cannot be fetched. Callers degrade instead of aborting.
    """
    def __init__(self, message: str, code: str = "upstream_unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, details=details)


class ForecastBackendError(UpstreamUnavailableError):
    """Raised when the remote forecast backend fails or returns an unusable payload."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="forecast_backend_error", details=details)


class ConfigurationError(CloudOptimizerException):
    """Raised when configuration or tenant preferences are invalid."""
    def __init__(self, message: str, code: str = "configuration_error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, details=details)
