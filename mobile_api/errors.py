"""
Error types for the Mobile API.

Every error raised by the package derives from MobileApiError so callers
can catch a single type at the outer boundary.
"""


class MobileApiError(Exception):
    """Base exception for Mobile API errors"""
    pass


class RandomSourceError(MobileApiError):
    """Raised when the operating system random source fails"""
    pass


class ClockError(MobileApiError):
    """Raised when the system clock reports a time before the Unix epoch"""
    pass


class KeyFormatError(MobileApiError, ValueError):
    """Raised when a string or byte sequence cannot be parsed as a SecurityKey"""

    def __init__(self, message: str = "not a suitable key string") -> None:
        super().__init__(message)


class WrongLengthError(KeyFormatError):
    """Key data length is incorrect"""

    def __init__(self, message: str = "key data length is incorrect") -> None:
        super().__init__(message)


class InvalidDigitError(KeyFormatError):
    """Hex string contains a character that is not a hex digit"""

    def __init__(self, message: str = "invalid digit found in string") -> None:
        super().__init__(message)


class AlreadyBusyError(MobileApiError):
    """
    Raised when the device is busy with another operation.

    The reason attribute is the exact reason string of the operation that
    holds the busy flag.
    """

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class PersistenceError(MobileApiError):
    """Raised when a configuration or information file cannot be written, read or removed"""
    pass


class DeviceInfoError(MobileApiError):
    """Raised when the device information file is missing or unreadable"""
    pass


class CommandError(MobileApiError):
    """Raised when a device command script fails"""
    pass


class ApiKeyError(MobileApiError):
    """
    Base for authorization failures.

    Carries the HTTP status code and the description shown to the caller.
    """

    status_code = 400

    def __init__(self, description: str) -> None:
        super().__init__(description)
        self.description = description


class InvalidKeyError(ApiKeyError):
    """The provided key was missing, in an invalid format or the wrong size"""
    status_code = 400


class WrongKeyError(ApiKeyError):
    """The provided key was in valid format but was incorrect"""
    status_code = 401


class ConfirmationError(MobileApiError):
    """Raised when a destructive command is called without the confirm text"""
    pass


class ApiResponseError(MobileApiError):
    """Raised by the client for an error response without a more specific type"""

    def __init__(self, status_code: int, description: str) -> None:
        super().__init__(f"{status_code}: {description}")
        self.status_code = status_code
        self.description = description
