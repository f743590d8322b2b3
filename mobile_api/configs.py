"""
Smart Device Configuration

DeviceInfo holds the device identity, usually stored in
`/opt/sifis-home/device.json`. It is written once at provisioning time.

DeviceConfig holds the owner-set configuration, usually stored in
`/opt/sifis-home/config.json`. The file is missing until the device is
configured for the first time and after a factory reset.
"""

import json
import os
import uuid
from contextlib import suppress
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict

from .errors import KeyFormatError, PersistenceError
from .security import SecurityKey


def _require(data: Dict[str, Any], field: str) -> Any:
    if field not in data:
        raise KeyError(f"missing field '{field}'")
    return data[field]


def _write_json(file: Path, text: str) -> None:
    # The previous file stays intact if any step fails
    file = Path(file)
    tmp_file = file.with_name(file.name + ".tmp")
    try:
        with open(tmp_file, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_file, file)
    except OSError as e:
        with suppress(OSError):
            tmp_file.unlink()
        raise PersistenceError(f"could not write {file}: {e}") from e


def _read_json(file: Path) -> Dict[str, Any]:
    # FileNotFoundError is left to the caller, it means "not configured"
    try:
        text = Path(file).read_text(encoding='utf-8')
    except FileNotFoundError:
        raise
    except (OSError, UnicodeDecodeError) as e:
        raise PersistenceError(f"could not read {file}: {e}") from e
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise PersistenceError(f"could not parse {file}: {e}") from e
    if not isinstance(data, dict):
        raise PersistenceError(f"could not parse {file}: expected a JSON object")
    return data


@dataclass(frozen=True)
class DeviceConfig:
    """Smart Device Configuration"""

    # User-defined name for the Smart Device
    name: str
    # Shared key for DHT communication
    dht_shared_key: SecurityKey

    def with_name(self, name: str) -> 'DeviceConfig':
        return replace(self, name=name)

    def with_dht_shared_key(self, dht_shared_key: SecurityKey) -> 'DeviceConfig':
        return replace(self, dht_shared_key=dht_shared_key)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'dht_shared_key': self.dht_shared_key.serialize(True),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DeviceConfig':
        """
        Build a configuration from a decoded JSON object.

        Raises:
            KeyFormatError: If dht_shared_key is not 64 hex characters
            ValueError: If a field is missing or has the wrong type
        """
        try:
            name = _require(data, 'name')
            key = _require(data, 'dht_shared_key')
        except KeyError as e:
            raise ValueError(str(e.args[0])) from e
        if not isinstance(name, str):
            raise ValueError("field 'name' must be a string")
        return cls(name=name, dht_shared_key=SecurityKey.deserialize(key))

    def to_json(self, pretty: bool = False) -> str:
        return json.dumps(self.to_dict(), indent=2 if pretty else None)

    @classmethod
    def load_from(cls, file: Path) -> 'DeviceConfig':
        """
        Load and parse configuration from the given file.

        Raises:
            FileNotFoundError: If the file does not exist
            PersistenceError: If the file cannot be parsed
        """
        data = _read_json(file)
        try:
            return cls.from_dict(data)
        except (KeyFormatError, ValueError) as e:
            raise PersistenceError(f"invalid configuration in {file}: {e}") from e

    def save_to(self, file: Path) -> None:
        """Write configuration to the given file as pretty JSON"""
        _write_json(file, self.to_json(pretty=True))


@dataclass(frozen=True)
class DeviceInfo:
    """
    Smart Device Information

    Pre-written at the factory or generated when the service is started
    for the first time. The authorization key is delivered with the device
    (as a QR code) for the mobile application.

    Changing the authorization key of an existing device breaks every
    credential already handed out for it.
    """

    product_name: str
    # 256-bit key the mobile application must present in x-api-key
    authorization_key: SecurityKey
    # Path to DHT private key file, generated by sifis-dht on the first run
    private_key_file: Path
    uuid: uuid.UUID

    def with_authorization_key(self, authorization_key: SecurityKey) -> 'DeviceInfo':
        """
        Return a copy with a new authorization key.

        NOTE: Not a good idea if the key is already printed as a QR code for
        the product.
        """
        return replace(self, authorization_key=authorization_key)

    def with_private_key_file(self, private_key_file: Path) -> 'DeviceInfo':
        return replace(self, private_key_file=Path(private_key_file))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'product_name': self.product_name,
            'authorization_key': self.authorization_key.serialize(True),
            'private_key_file': str(self.private_key_file),
            'uuid': str(self.uuid),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DeviceInfo':
        """
        Build device information from a decoded JSON object.

        Raises:
            KeyFormatError: If authorization_key is not 64 hex characters
            ValueError: If a field is missing or malformed
        """
        try:
            product_name = _require(data, 'product_name')
            key = _require(data, 'authorization_key')
            private_key_file = _require(data, 'private_key_file')
            uuid_text = _require(data, 'uuid')
        except KeyError as e:
            raise ValueError(str(e.args[0])) from e
        if not isinstance(product_name, str) or not isinstance(private_key_file, str):
            raise ValueError("fields 'product_name' and 'private_key_file' must be strings")
        if not isinstance(uuid_text, str):
            raise ValueError("field 'uuid' must be a string")
        device_uuid = uuid.UUID(uuid_text)
        if device_uuid.version != 7:
            raise ValueError(f"field 'uuid' must be a version 7 UUID, got version {device_uuid.version}")
        return cls(
            product_name=product_name,
            authorization_key=SecurityKey.deserialize(key),
            private_key_file=Path(private_key_file),
            uuid=device_uuid,
        )

    def to_json(self, pretty: bool = False) -> str:
        """Convenience function to turn device information to JSON"""
        return json.dumps(self.to_dict(), indent=2 if pretty else None)

    @classmethod
    def load_from(cls, file: Path) -> 'DeviceInfo':
        """
        Load and parse device information from the given file.

        Raises:
            FileNotFoundError: If the file does not exist
            PersistenceError: If the file cannot be parsed
        """
        data = _read_json(file)
        try:
            return cls.from_dict(data)
        except (KeyFormatError, ValueError) as e:
            raise PersistenceError(f"invalid device information in {file}: {e}") from e

    def save_to(self, file: Path) -> None:
        """Write device information to the given file as pretty JSON"""
        _write_json(file, self.to_json(pretty=True))
