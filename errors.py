"""Error taxonomy shared by the engine, the controller and the service."""

RETRYABLE_STATUSES = (408, 409, 429)


class MaintenanceError(Exception):
    """Base class. The message is meant to be shown to the user."""

    def __init__(self, message=""):
        super().__init__(message)
        self.message = message

    def __str__(self):
        return self.message


class ValidationError(MaintenanceError, ValueError):
    """A required field is missing or a cross-field rule is violated."""


class InsufficientStockError(ValidationError):
    def __init__(self, message, shortages=None):
        super().__init__(message)
        self.shortages = shortages or []


class ConflictError(MaintenanceError):
    """Illegal or no-op transition, or the target entity is unknown."""


class PermissionDeniedError(MaintenanceError):
    pass


class TransportError(MaintenanceError):
    """Network failure, timeout or a non-2xx answer from the service."""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_conflict(self):
        return self.status_code == 409

    @property
    def is_permanent(self):
        """A 4xx rejection other than timeout, conflict or rate limit."""
        if self.status_code is None or self.status_code in RETRYABLE_STATUSES:
            return False
        return 400 <= self.status_code < 500


class PartialSideEffectError(MaintenanceError):
    """The primary write succeeded but some ledger appends did not."""

    def __init__(self, message, failures=None):
        super().__init__(message)
        self.failures = failures or []
