"""
API key authorization.

The mobile application sends the device authorization key in the
`x-api-key` header, either as 64 hex characters or as base64:

    x-api-key: f0e1d2c3b4a5968778695a4b3c2d1e0f0f1e2d3c4b5a69788796a5b4c3d2e1f0
    x-api-key: 8OHSw7Sllod4aVpLPC0eDw8eLTxLWml4h5altMPS4fA=
"""

from typing import Optional

from .config import API_KEY_HEADER
from .errors import InvalidKeyError, KeyFormatError, WrongKeyError
from .security import SecurityKey

MISSING_HEADER = f"Missing `{API_KEY_HEADER}` header."
INVALID_KEY = "Invalid API key"
WRONG_KEY = "The request requires user authentication."


def check_api_key(given: Optional[str], authorization_key: SecurityKey) -> SecurityKey:
    """
    Validate a caller-supplied API key against the device authorization key.

    Args:
        given: Header value, or None when the header is missing
        authorization_key: Provisioned key from the device information

    Returns:
        The parsed key when access is granted

    Raises:
        InvalidKeyError: Header missing or not a valid key string (400)
        WrongKeyError: Well-formed key that does not match (401)
    """
    if given is None:
        raise InvalidKeyError(MISSING_HEADER)

    try:
        key = SecurityKey.from_string(given)
    except KeyFormatError as e:
        raise InvalidKeyError(INVALID_KEY) from e

    if not authorization_key.constant_time_equals(key):
        raise WrongKeyError(WRONG_KEY)

    return key


class AuthorizationGuard:
    """
    Checks request headers against the provisioned authorization key.

    The key is read once at construction; device information is immutable
    for the lifetime of the service.
    """

    def __init__(self, authorization_key: SecurityKey, header_name: str = API_KEY_HEADER) -> None:
        self.authorization_key = authorization_key
        self.header_name = header_name

    def check(self, given: Optional[str]) -> SecurityKey:
        """See check_api_key"""
        return check_api_key(given, self.authorization_key)

    def check_headers(self, headers) -> SecurityKey:
        """Extract the API key from a case-insensitive header mapping and check it"""
        return self.check(headers.get(self.header_name))

    def is_authorized(self, given: Optional[str]) -> bool:
        try:
            self.check(given)
        except (InvalidKeyError, WrongKeyError):
            return False
        return True
