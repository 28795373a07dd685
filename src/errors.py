"""Exception taxonomy for the tender learning loop."""


class TrainingError(Exception):
    """Base class for all learning-loop errors."""


class FieldValidationError(TrainingError):
    """A single field failed its format rule.

    Raised by the per-field rules and always caught by the record validator,
    which turns it into a zero-confidence entry and an error string.
    """

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class NotFoundError(TrainingError):
    """An operation referenced an unknown example or session id."""

    def __init__(self, kind: str, identifier: str):
        super().__init__(f"{kind} not found: {identifier}")
        self.kind = kind
        self.identifier = identifier


class TransientExternalError(TrainingError):
    """Capture or extraction call failed (timeout, rate limit, bad response)."""


class FatalStorageError(TrainingError):
    """Persisted state could not be read or written."""
