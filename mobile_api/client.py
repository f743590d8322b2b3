"""
HTTP client for the Mobile API.

Talks to a running mobile_api_server the way the mobile application does.
Useful for scripting device setup and for testing a deployed device.

Example:
    client = MobileApiClient("http://192.168.1.20:8000", key)
    client.set_configuration(DeviceConfig("Living room lamp", shared_key))
    client.restart()
"""

import time
from typing import Any, Callable, Dict, Optional, Tuple, Type, Union

import requests

from .auth import INVALID_KEY, MISSING_HEADER
from .config import (
    API_KEY_HEADER, API_PREFIX, DEFAULT_CLIENT_RETRIES, DEFAULT_CLIENT_TIMEOUT,
    FACTORY_RESET_CONFIRM
)
from .configs import DeviceConfig
from .errors import (
    AlreadyBusyError, ApiResponseError, ConfirmationError, InvalidKeyError, WrongKeyError
)
from .logger import Logger
from .security import SecurityKey

# Errors raised before the request reached the device
UNDELIVERED = (requests.ConnectionError,)


class MobileApiClient:
    """HTTP client for the SIFIS-Home Mobile API"""

    def __init__(
        self,
        base_url: str,
        api_key: Union[SecurityKey, str],
        timeout: int = DEFAULT_CLIENT_TIMEOUT,
        max_retries: int = DEFAULT_CLIENT_RETRIES
    ):
        if isinstance(api_key, str):
            api_key = SecurityKey.from_string(api_key)
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.max_retries = max_retries
        self.session = requests.Session()
        self.session.headers[API_KEY_HEADER] = api_key.hex()

    def _url(self, path: str) -> str:
        return f"{self.base_url}{API_PREFIX}{path}"

    def _retry_request(
        self,
        request_fn: Callable[[], requests.Response],
        operation_name: str,
        retry_on: Tuple[Type[Exception], ...] = (requests.RequestException,)
    ) -> requests.Response:
        """
        Send a request, repeating it on the given transport errors.

        Device commands pass retry_on=UNDELIVERED: a read
        timeout means the device already received the command and may still
        be running it, so it must not be sent again.
        """
        attempt = 1
        while True:
            try:
                return request_fn()
            except retry_on as e:
                if attempt >= self.max_retries:
                    Logger.error(f"{operation_name} gave up after {attempt} attempts: {e}")
                    raise
                Logger.warning(f"{operation_name}: {e}, retrying ({attempt}/{self.max_retries})")
                time.sleep(1.0 * attempt)
                attempt += 1

    @staticmethod
    def _description(resp: requests.Response) -> str:
        try:
            return resp.json()["error"]["description"]
        except (ValueError, KeyError, TypeError):
            return resp.text

    def _check(self, resp: requests.Response) -> Dict[str, Any]:
        """
        Return the JSON body of a successful response.

        Raises:
            InvalidKeyError: 400 caused by a missing or malformed key
            WrongKeyError: 401
            AlreadyBusyError: 503, reason is the busy reason of the device
            ApiResponseError: Any other error status
        """
        if resp.status_code == 200:
            return resp.json()

        description = self._description(resp)
        if resp.status_code == 400 and description in (MISSING_HEADER, INVALID_KEY):
            raise InvalidKeyError(description)
        if resp.status_code == 401:
            raise WrongKeyError(description)
        if resp.status_code == 503:
            raise AlreadyBusyError(description)
        raise ApiResponseError(resp.status_code, description)

    def get_device_info(self) -> Dict[str, str]:
        """GET /device/info - Product name and UUID"""
        resp = self._retry_request(
            lambda: self.session.get(self._url("/device/info"), timeout=self.timeout),
            "Get device info"
        )
        return self._check(resp)

    def get_configuration(self) -> Optional[DeviceConfig]:
        """GET /device/configuration - Returns None if the device is not configured"""
        resp = self._retry_request(
            lambda: self.session.get(self._url("/device/configuration"), timeout=self.timeout),
            "Get configuration"
        )
        if resp.status_code == 404:
            return None
        return DeviceConfig.from_dict(self._check(resp))

    def set_configuration(self, config: DeviceConfig) -> str:
        """PUT /device/configuration - Returns the server message"""
        resp = self._retry_request(
            lambda: self.session.put(
                self._url("/device/configuration"),
                json=config.to_dict(),
                timeout=self.timeout
            ),
            "Set configuration",
            retry_on=UNDELIVERED
        )
        return self._check(resp)["message"]

    def factory_reset(self, confirm: str = FACTORY_RESET_CONFIRM) -> str:
        """
        GET /command/factory_reset

        Raises:
            ConfirmationError: If the server rejected the confirm text
        """
        resp = self._retry_request(
            lambda: self.session.get(
                self._url("/command/factory_reset"),
                params={"confirm": confirm},
                timeout=self.timeout
            ),
            "Factory reset",
            retry_on=UNDELIVERED
        )
        try:
            return self._check(resp)["message"]
        except ApiResponseError as e:
            if e.status_code == 400:
                raise ConfirmationError(e.description) from e
            raise

    def restart(self) -> str:
        """GET /command/restart"""
        resp = self._retry_request(
            lambda: self.session.get(self._url("/command/restart"), timeout=self.timeout),
            "Restart",
            retry_on=UNDELIVERED
        )
        return self._check(resp)["message"]

    def shutdown(self) -> str:
        """GET /command/shutdown"""
        resp = self._retry_request(
            lambda: self.session.get(self._url("/command/shutdown"), timeout=self.timeout),
            "Shutdown",
            retry_on=UNDELIVERED
        )
        return self._check(resp)["message"]
