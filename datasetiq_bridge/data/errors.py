"""User-facing errors and classification of upstream failures."""

from datasetiq_bridge.config.settings import CONNECT_MESSAGE
from datasetiq_bridge.models.series import ErrorCode


DEFAULT_FETCH_MESSAGE = "Unable to fetch data."

_CODE_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.NO_KEY: CONNECT_MESSAGE,
    ErrorCode.INVALID_KEY: "Invalid API Key. Reconnect at datasetiq.com/dashboard/api-keys",
    ErrorCode.REVOKED_KEY: "API Key revoked. Get a new key at datasetiq.com/dashboard/api-keys",
    ErrorCode.FREE_LIMIT: "Free plan limit reached. Upgrade at datasetiq.com/pricing",
    ErrorCode.QUOTA_EXCEEDED: "Daily Quota Exceeded. Upgrade at datasetiq.com/pricing",
    ErrorCode.PLAN_REQUIRED: "Upgrade required. Visit datasetiq.com/pricing",
}

RATE_LIMITED_MESSAGE = "Rate limited. Please retry shortly."
SERVER_UNAVAILABLE_MESSAGE = "Server unavailable. Please retry."


class DataSetIQError(Exception):
    """Base class. ``str(exc)`` is always a message fit for a spreadsheet cell."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InputError(DataSetIQError, ValueError):
    """Caller input rejected before any network call."""


class InvalidDate(InputError):
    def __init__(self, message: str = "Invalid date.") -> None:
        super().__init__(message)


class InvalidDateSerial(InputError):
    def __init__(self, message: str = "Invalid date serial number.") -> None:
        super().__init__(message)


class InvalidDateInput(InputError):
    def __init__(self, message: str = "Invalid date input.") -> None:
        super().__init__(message)


class SeriesIdRequired(InputError):
    def __init__(self, message: str = "series_id is required.") -> None:
        super().__init__(message)


class DateRequired(InputError):
    def __init__(self, message: str = "date is required.") -> None:
        super().__init__(message)


class FieldRequired(InputError):
    def __init__(self, message: str = "field is required.") -> None:
        super().__init__(message)


class ApiKeyRequired(InputError):
    def __init__(self, message: str = "API key required.") -> None:
        super().__init__(message)


class FetchError(DataSetIQError):
    """A classified network, server or entitlement failure."""


class DataNotAvailable(DataSetIQError):
    """The request succeeded but the asked-for value does not exist."""


class ValueNotAvailable(DataNotAvailable):
    pass


class MetadataNotFound(DataNotAvailable):
    def __init__(self, field_name: str) -> None:
        super().__init__(f'Metadata "{field_name}" not found.')
        self.field_name = field_name


class StorageError(DataSetIQError):
    """Credential or list storage is unavailable."""


def classify(
    code: ErrorCode | None, status: int, fallback_message: str | None = None
) -> str:
    """
    Map an upstream error code and HTTP status to a user-facing message.

    Codes take precedence over status; ``UNKNOWN`` counts as no code.

    Args:
        code: Parsed error code from the response body, if any
        status: HTTP status code (0 when no response was received)
        fallback_message: Message to use when nothing more specific applies

    Returns:
        The message to show the user
    """
    if code is not None and code in _CODE_MESSAGES:
        return _CODE_MESSAGES[code]
    if status == 429:
        return RATE_LIMITED_MESSAGE
    if status >= 500:
        return SERVER_UNAVAILABLE_MESSAGE
    return fallback_message or DEFAULT_FETCH_MESSAGE
