"""
Custom error classes for MarginDesk.
Structured error handling with error codes across all modules.

Hierarchy:
    MarginDeskError
    ├── APIError
    │   ├── APIRateLimitError
    │   └── APIAuthError
    ├── ConfigError
    │   └── NotConnectedError
    ├── DataError
    │   ├── MappingError
    │   └── ValidationError
    │       └── InvalidRangeError
    ├── NotFoundError
    └── JobError
        ├── JobNotFoundError
        └── JobStateError
"""


class MarginDeskError(Exception):
    """Base exception for all MarginDesk errors."""

    def __init__(self, message: str, code: str = "UNKNOWN", details: dict = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(f"[{code}] {message}")


# --- API Errors ---

class APIError(MarginDeskError):
    """Non-2xx response or transport failure from an external API."""

    def __init__(self, message: str, code: str = "API_ERROR",
                 status_code: int = None, url: str = None,
                 retryable: bool = None, **kwargs):
        self.status_code = status_code
        self.url = url
        if retryable is None:
            retryable = status_code is None or status_code == 429 or status_code >= 500
        self.retryable = retryable
        details = {"status_code": status_code, "url": url, **kwargs}
        super().__init__(message, code=code, details=details)


class APIRateLimitError(APIError):
    """Rate limit exceeded."""

    def __init__(self, url: str, retry_after: int = None):
        msg = f"Rate limit exceeded: {url}"
        if retry_after:
            msg += f" (retry after {retry_after}s)"
        super().__init__(
            msg, code="API_RATE_LIMIT", status_code=429, url=url,
            retryable=True, retry_after=retry_after,
        )


class APIAuthError(APIError):
    """Authentication or authorization failure."""

    def __init__(self, url: str, status_code: int = 401):
        super().__init__(
            f"Authentication failed: {url}",
            code="API_AUTH_FAILED", url=url, status_code=status_code,
            retryable=False,
        )


# --- Configuration Errors ---

class ConfigError(MarginDeskError):
    """Missing or invalid configuration."""

    def __init__(self, message: str, code: str = "CONFIG_ERROR", **kwargs):
        super().__init__(message, code=code, details=kwargs)


class NotConnectedError(ConfigError):
    """No credentials are available for an external service."""

    def __init__(self, service: str):
        self.service = service
        super().__init__(
            f"{service} is not connected. Please connect {service} first.",
            code="NOT_CONNECTED", service=service,
        )


# --- Data Errors ---

class DataError(MarginDeskError):
    """Base class for data processing errors."""
    pass


class MappingError(DataError):
    """An external record could not be mapped to an internal row."""

    def __init__(self, message: str, field: str = None):
        self.field = field
        super().__init__(message, code="MAPPING_FAILED", details={"field": field})


class ValidationError(DataError):
    """Caller-supplied input was rejected."""

    def __init__(self, message: str, code: str = "INVALID_REQUEST", **kwargs):
        super().__init__(message, code=code, details=kwargs)


class InvalidRangeError(ValidationError):
    """Unknown or malformed date-range token."""

    def __init__(self, token: str):
        self.token = token
        super().__init__(
            f"Invalid date range: {token!r}", code="INVALID_RANGE", range=token,
        )


# --- Lookup Errors ---

class NotFoundError(MarginDeskError):
    """A record named by the caller does not exist."""

    def __init__(self, entity: str, entity_id):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            f"{entity} not found: {entity_id}", code="NOT_FOUND",
            details={"entity": entity, "id": entity_id},
        )


# --- Job Errors ---

class JobError(MarginDeskError):
    """Background job error."""
    pass


class JobNotFoundError(JobError):
    """No job exists with the given id."""

    def __init__(self, job_id):
        super().__init__(
            f"Job not found: {job_id}", code="JOB_NOT_FOUND",
            details={"job_id": job_id},
        )


class JobStateError(JobError):
    """The requested transition is not allowed from the job's current state."""

    def __init__(self, job_id, status: str, message: str = None):
        self.status = status
        super().__init__(
            message or f"Job {job_id} is {status}",
            code="JOB_STATE_INVALID",
            details={"job_id": job_id, "status": status},
        )
