"""Error taxonomy for the registration service.

Every error carries the HTTP status the blueprint answers with, so route
handlers can simply let domain errors propagate.
"""


class RegistrationError(Exception):
    """Base class for all domain errors."""

    status_code = 400

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__

    def to_dict(self) -> dict:
        return {"error": self.message}


class ValidationError(RegistrationError):
    """Missing or malformed input."""


class DuplicateParticipantError(RegistrationError):
    """A participant with the same name is already registered for the school."""


class UnknownSchoolError(RegistrationError):
    """The school has no configured chest-number range."""


class RangeExhaustedError(RegistrationError):
    """Every chest number in the school's range has been issued."""


class NotFoundError(RegistrationError):
    status_code = 404


class PersistenceError(RegistrationError):
    """Reading or writing the record store failed."""

    status_code = 500


class ConfigError(RegistrationError):
    """Invalid range-table configuration."""

    status_code = 500


__all__ = [
    "RegistrationError",
    "ValidationError",
    "DuplicateParticipantError",
    "UnknownSchoolError",
    "RangeExhaustedError",
    "NotFoundError",
    "PersistenceError",
    "ConfigError",
]
