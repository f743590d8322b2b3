"""
Device commands

Each command marks the device busy for its whole duration. A second command
arriving while one is running fails immediately with AlreadyBusyError.

Commands that touch the operating system run a shell script from the
scripts directory (MOBILE_API_SCRIPTS_PATH):
  factory_reset.sh, restart.sh, shutdown.sh
"""

import os
import subprocess
from pathlib import Path
from typing import Optional

from .config import (
    BUSY_FACTORY_RESET, BUSY_RESTART, BUSY_SAVING_CONFIG, BUSY_SHUTDOWN,
    DEFAULT_SCRIPTS_PATH, FACTORY_RESET_CONFIRM, SCRIPT_TIMEOUT_SECONDS,
    SCRIPTS_PATH_ENV
)
from .configs import DeviceConfig
from .errors import CommandError, ConfirmationError
from .logger import Logger
from .state import DeviceState

FACTORY_RESET_SCRIPT = "factory_reset.sh"
RESTART_SCRIPT = "restart.sh"
SHUTDOWN_SCRIPT = "shutdown.sh"

FACTORY_RESET_DONE = "Factory reset complete."
RESTART_DONE = "System will now restart."
SHUTDOWN_DONE = "System will now power off."
CONFIGURATION_SAVED = "Configuration saved."


def scripts_path() -> Path:
    return Path(os.environ.get(SCRIPTS_PATH_ENV, DEFAULT_SCRIPTS_PATH))


def run_script(script_name: str, timeout: Optional[float] = SCRIPT_TIMEOUT_SECONDS) -> str:
    """
    Run a script from the scripts directory.

    Args:
        script_name: File name inside the scripts directory
        timeout: Seconds to wait before giving up

    Returns:
        Script stdout

    Raises:
        CommandError: If the script is missing, times out or exits non-zero
    """
    script = scripts_path() / script_name
    Logger.info(f"Running: {script}")

    try:
        result = subprocess.run(
            [str(script)],
            capture_output=True,
            timeout=timeout
        )
    except subprocess.TimeoutExpired as e:
        raise CommandError(f"{script_name} timed out after {timeout} seconds") from e
    except FileNotFoundError as e:
        raise CommandError(f"{script} not found") from e
    except PermissionError as e:
        raise CommandError(f"{script} is not executable") from e

    stdout = result.stdout.decode(errors='replace').strip()
    if result.returncode != 0:
        stderr = result.stderr.decode(errors='replace').strip()
        raise CommandError(f"{script_name} exited with status {result.returncode}: {stderr}")

    if stdout:
        Logger.substep(stdout)
    return stdout


def factory_reset(state: DeviceState, confirm: Optional[str]) -> str:
    """
    Reset the device back to factory settings.

    Deletes the device configuration and runs factory_reset.sh. The device
    still needs a restart afterwards.

    Args:
        confirm: Must be exactly "I really want to perform a factory reset"

    Raises:
        ConfirmationError: If confirm is missing or wrong
        AlreadyBusyError: If another command is running
        PersistenceError: If config.json could not be removed
        CommandError: If the script fails
    """
    if confirm != FACTORY_RESET_CONFIRM:
        raise ConfirmationError("The required confirm parameter was not correct or set.")

    with state.try_busy(BUSY_FACTORY_RESET):
        Logger.warning("Performing factory reset")
        state.set_config(None)
        run_script(FACTORY_RESET_SCRIPT)
    return FACTORY_RESET_DONE


def restart(state: DeviceState) -> str:
    with state.try_busy(BUSY_RESTART):
        run_script(RESTART_SCRIPT)
    return RESTART_DONE


def shutdown(state: DeviceState) -> str:
    with state.try_busy(BUSY_SHUTDOWN):
        run_script(SHUTDOWN_SCRIPT)
    return SHUTDOWN_DONE


def save_configuration(state: DeviceState, config: DeviceConfig) -> str:
    """
    Store a new device configuration.

    The device must be restarted for the configuration to take effect.

    Raises:
        AlreadyBusyError: If another command is running
        PersistenceError: If config.json could not be written
    """
    with state.try_busy(BUSY_SAVING_CONFIG):
        state.set_config(config)
    return CONFIGURATION_SAVED
