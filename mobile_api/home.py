"""
SIFIS-Home file locations and persistence.

SifisHome knows where device.json and config.json live and shares one SRNG
for generating new device identities.
"""

import os
from pathlib import Path
from typing import Optional, Union

from .config import (
    DEFAULT_SIFIS_HOME_PATH, DEVICE_CONFIG_FILE, DEVICE_INFO_FILE,
    PRIVATE_KEY_FILE, SIFIS_HOME_PATH_ENV
)
from .configs import DeviceConfig, DeviceInfo
from .errors import DeviceInfoError, PersistenceError
from .logger import Logger
from .security import SRNG


class SifisHome:
    """
    SIFIS-Home instance

    Uses the path given with SIFIS_HOME_PATH, or /opt/sifis-home/ when the
    environment variable is not set.
    """

    def __init__(self, home_path: Optional[Union[str, Path]] = None, srng: Optional[SRNG] = None) -> None:
        if home_path is None:
            home_path = os.environ.get(SIFIS_HOME_PATH_ENV, DEFAULT_SIFIS_HOME_PATH)
        self.home_path = Path(home_path)
        self.srng = srng or SRNG()

    def config_file_path(self) -> Path:
        return self.home_path / DEVICE_CONFIG_FILE

    def info_file_path(self) -> Path:
        return self.home_path / DEVICE_INFO_FILE

    def private_key_file_path(self) -> Path:
        return self.home_path / PRIVATE_KEY_FILE

    def new_info(self, product_name: str) -> DeviceInfo:
        """
        Create new device information.

        The authorization key and UUID are generated, the private key file
        defaults to private.pem in the home path.
        """
        return DeviceInfo(
            product_name=product_name,
            authorization_key=self.srng.generate_key(),
            private_key_file=self.private_key_file_path(),
            uuid=self.srng.generate_uuid(),
        )

    def load_info(self) -> DeviceInfo:
        """
        Load device information from device.json.

        Raises:
            DeviceInfoError: If the file is missing or cannot be parsed
        """
        path = self.info_file_path()
        try:
            return DeviceInfo.load_from(path)
        except FileNotFoundError as e:
            raise DeviceInfoError(
                f"Device information file {path} not found.\n"
                f"You can use create_device_info application to create it."
            ) from e
        except PersistenceError as e:
            raise DeviceInfoError(f"Could not load device information file: {path}\n{e}") from e

    def save_info(self, device_info: DeviceInfo) -> None:
        device_info.save_to(self.info_file_path())

    def load_config(self) -> Optional[DeviceConfig]:
        """
        Load device configuration from config.json.

        Returns:
            The configuration, or None if the device is not configured or
            the file is unreadable
        """
        path = self.config_file_path()
        try:
            return DeviceConfig.load_from(path)
        except FileNotFoundError:
            return None
        except PersistenceError as e:
            Logger.warning(f"Ignoring unreadable configuration: {e}")
            return None

    def save_config(self, config: DeviceConfig) -> None:
        try:
            self.home_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"could not create {self.home_path}: {e}") from e
        config.save_to(self.config_file_path())

    def remove_config(self) -> None:
        """
        Remove config.json.

        A missing file is not an error.

        Raises:
            PersistenceError: If the file exists but cannot be removed
        """
        try:
            self.config_file_path().unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise PersistenceError(f"could not remove {self.config_file_path()}: {e}") from e
