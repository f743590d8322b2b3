#!/usr/bin/env python3
"""
Device Information Provisioning Tool

Creates a new device.json for the server. The file is written to the
/opt/sifis-home/ path by default, but the location can be changed with the
SIFIS_HOME_PATH environment variable or with the -o option.

Usage:
  create_device_info "Smart Lamp"                      # Write device.json
  create_device_info "Smart Lamp" -o /tmp/sifis-home   # Custom output path
  create_device_info "Smart Lamp" -f                   # Overwrite existing file
  create_device_info "Smart Lamp" -p /etc/dht/key.pem  # Custom private key path
  create_device_info "Smart Lamp" --show-key           # Print authorization key

WARNING: Creating new device information generates a new authorization key.
Every credential already handed out for the device stops working.
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .config import DEVICE_INFO_FILE
from .errors import PersistenceError
from .home import SifisHome
from .logger import Logger, Colors, key_hint


class DeviceInfoTool:
    """Writes device.json into a SIFIS-Home directory"""

    def __init__(self, home: SifisHome):
        self.home = home

    def create(
        self,
        product_name: str,
        force: bool = False,
        private_key: Optional[Path] = None,
        show_key: bool = False
    ) -> int:
        """
        Create and write new device information.

        Args:
            product_name: Product name for the Smart Device
            force: Overwrite an existing device.json
            private_key: Custom path for the DHT private key
            show_key: Print the full authorization key

        Returns:
            0 on success or when the file already exists, 1 on error
        """
        Logger.header("Create Device Information")
        info_file = self.home.info_file_path()

        if info_file.exists() and not force:
            Logger.info(f"The device information file already exists at: {info_file}")
            Logger.info("You can use the -f option to overwrite it with a new one.")
            return 0

        if info_file.exists():
            Logger.warning("Overwriting existing device information")
            Logger.warning("The old authorization key will no longer be accepted by the device")

        try:
            self.home.home_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            Logger.error(f"Could not create output path: {e}")
            return 1

        device_info = self.home.new_info(product_name)
        if private_key is not None:
            device_info = device_info.with_private_key_file(private_key)

        try:
            self.home.save_info(device_info)
        except PersistenceError as e:
            Logger.error(f"Could not write device information: {e}")
            return 1

        Logger.success(f"A new device information file was written to: {info_file}")
        Logger.substep(f"Product name: {device_info.product_name}")
        Logger.substep(f"UUID: {device_info.uuid}")
        Logger.substep(f"Private key file: {device_info.private_key_file}")

        key_hex = device_info.authorization_key.hex(True)
        if show_key:
            Logger.section("Authorization Key (Deliver with the Device)")
            Logger.substep("=" * 70)
            Logger.substep(f"{Colors.OK}{key_hex}{Colors.RESET}")
            Logger.substep("=" * 70)
        else:
            Logger.substep(f"Authorization key: {key_hint(key_hex)}")

        return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    parser = argparse.ArgumentParser(
        description="Creates 'device.json' for the server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument('product_name', help='Product name for the SIFIS-Home Smart Device')
    parser.add_argument('-o', '--output-path', metavar='PATH', type=Path,
                        help='Sets a custom output path')
    parser.add_argument('-f', '--force', action='store_true',
                        help=f'Force writing of a new {DEVICE_INFO_FILE} file')
    parser.add_argument('-p', '--private-key', metavar='FILE', type=Path,
                        help='Set a custom path for the private key')
    parser.add_argument('--show-key', action='store_true',
                        help='Print the full authorization key')
    args = parser.parse_args(argv)

    if load_dotenv():
        Logger.info("Loaded environment variables from .env file")

    tool = DeviceInfoTool(SifisHome(args.output_path))
    return tool.create(
        args.product_name,
        force=args.force,
        private_key=args.private_key,
        show_key=args.show_key
    )


if __name__ == "__main__":
    sys.exit(main())
