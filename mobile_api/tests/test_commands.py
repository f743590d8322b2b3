import os
import stat
import subprocess
import tempfile
import unittest
import uuid
from pathlib import Path
from unittest.mock import MagicMock, patch

from mobile_api import commands
from mobile_api.configs import DeviceConfig, DeviceInfo
from mobile_api.errors import (
    AlreadyBusyError, CommandError, ConfirmationError, PersistenceError
)
from mobile_api.home import SifisHome
from mobile_api.logger import Logger
from mobile_api.security import SecurityKey
from mobile_api.state import DeviceState

CONFIRM = "I really want to perform a factory reset"


def write_script(directory: Path, name: str, body: str) -> Path:
    script = directory / name
    script.write_text(f"#!/bin/sh\n{body}\n")
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return script


class CommandTestCase(unittest.TestCase):
    def setUp(self):
        Logger.enabled = False
        self.tmp = tempfile.TemporaryDirectory()
        self.scripts = Path(self.tmp.name) / "scripts"
        self.scripts.mkdir()
        self.marker = Path(self.tmp.name) / "ran"
        for name in ("factory_reset.sh", "restart.sh", "shutdown.sh"):
            write_script(self.scripts, name, f'echo "{name}" >> "{self.marker}"\necho "{name} was run"')

        self.env = patch.dict(os.environ, {'MOBILE_API_SCRIPTS_PATH': str(self.scripts)})
        self.env.start()

        self.home = SifisHome(Path(self.tmp.name) / "home")
        info = DeviceInfo(
            product_name="Smart Lamp",
            authorization_key=SecurityKey.new(),
            private_key_file=Path("/tmp/private.pem"),
            uuid=uuid.UUID("0187a9b1-5c2e-7d4f-8a6b-1c2d3e4f5a6b"),
        )
        self.config = DeviceConfig(name="Lamp", dht_shared_key=SecurityKey.new())
        self.home.save_config(self.config)
        self.state = DeviceState(self.home, info, self.config)

    def tearDown(self):
        self.env.stop()
        self.tmp.cleanup()
        Logger.enabled = True

    def scripts_run(self):
        if not self.marker.exists():
            return []
        return self.marker.read_text().split()


class TestRunScript(CommandTestCase):
    def test_run_script(self):
        output = commands.run_script("restart.sh")
        self.assertEqual(output, "restart.sh was run")
        self.assertEqual(self.scripts_run(), ["restart.sh"])

    def test_scripts_path_from_environment(self):
        self.assertEqual(commands.scripts_path(), self.scripts)
        with patch.dict(os.environ, {}, clear=True):
            self.assertEqual(commands.scripts_path(), Path("/opt/sifis-home/scripts"))

    def test_missing_script(self):
        with self.assertRaises(CommandError) as ctx:
            commands.run_script("missing.sh")
        self.assertIn("not found", str(ctx.exception))

    def test_failing_script(self):
        write_script(self.scripts, "fail.sh", 'echo "broken" >&2\nexit 3')
        with self.assertRaises(CommandError) as ctx:
            commands.run_script("fail.sh")
        self.assertIn("status 3", str(ctx.exception))
        self.assertIn("broken", str(ctx.exception))

    def test_timeout(self):
        with patch('mobile_api.commands.subprocess.run',
                   side_effect=subprocess.TimeoutExpired(cmd="slow.sh", timeout=1)):
            with self.assertRaises(CommandError) as ctx:
                commands.run_script("slow.sh", timeout=1)
        self.assertIn("timed out", str(ctx.exception))


class TestFactoryReset(CommandTestCase):
    def test_requires_confirmation(self):
        for confirm in (None, "", "yes", CONFIRM.lower()):
            with self.assertRaises(ConfirmationError):
                commands.factory_reset(self.state, confirm)
        # Nothing was touched
        self.assertTrue(self.home.config_file_path().exists())
        self.assertEqual(self.state.get_config(), self.config)
        self.assertEqual(self.scripts_run(), [])

    def test_factory_reset(self):
        message = commands.factory_reset(self.state, CONFIRM)
        self.assertEqual(message, "Factory reset complete.")
        self.assertFalse(self.home.config_file_path().exists())
        self.assertIsNone(self.state.get_config())
        self.assertEqual(self.scripts_run(), ["factory_reset.sh"])
        self.assertIsNone(self.state.busy())

    def test_busy(self):
        with self.state.try_busy("The device is restarting."):
            with self.assertRaises(AlreadyBusyError) as ctx:
                commands.factory_reset(self.state, CONFIRM)
        self.assertEqual(ctx.exception.reason, "The device is restarting.")
        self.assertEqual(self.state.get_config(), self.config)
        self.assertEqual(self.scripts_run(), [])

    def test_reason_while_running(self):
        seen = []

        def fake_run_script(name, timeout=None):
            seen.append(self.state.busy())
            return ""

        with patch('mobile_api.commands.run_script', side_effect=fake_run_script):
            commands.factory_reset(self.state, CONFIRM)
        self.assertEqual(seen, ["A factory reset is performed."])

    def test_script_failure_releases_busy(self):
        write_script(self.scripts, "factory_reset.sh", "exit 1")
        with self.assertRaises(CommandError):
            commands.factory_reset(self.state, CONFIRM)
        self.assertIsNone(self.state.busy())

    def test_persistence_failure_stops_reset(self):
        self.state.home = MagicMock(spec=SifisHome)
        self.state.home.remove_config.side_effect = PersistenceError("read-only")
        with self.assertRaises(PersistenceError):
            commands.factory_reset(self.state, CONFIRM)
        self.assertEqual(self.state.get_config(), self.config)
        self.assertEqual(self.scripts_run(), [])
        self.assertIsNone(self.state.busy())


class TestRestartShutdown(CommandTestCase):
    def test_restart(self):
        self.assertEqual(commands.restart(self.state), "System will now restart.")
        self.assertEqual(self.scripts_run(), ["restart.sh"])
        self.assertIsNone(self.state.busy())

    def test_shutdown(self):
        self.assertEqual(commands.shutdown(self.state), "System will now power off.")
        self.assertEqual(self.scripts_run(), ["shutdown.sh"])
        self.assertIsNone(self.state.busy())

    def test_restart_blocks_shutdown(self):
        with self.state.try_busy("The device is restarting."):
            with self.assertRaises(AlreadyBusyError) as ctx:
                commands.shutdown(self.state)
        self.assertEqual(ctx.exception.reason, "The device is restarting.")
        self.assertEqual(self.scripts_run(), [])


class TestSaveConfiguration(CommandTestCase):
    def test_save_configuration(self):
        new_config = self.config.with_name("Kitchen lamp")
        self.assertEqual(commands.save_configuration(self.state, new_config), "Configuration saved.")
        self.assertEqual(self.state.get_config(), new_config)
        self.assertEqual(self.home.load_config(), new_config)
        self.assertIsNone(self.state.busy())

    def test_save_configuration_busy(self):
        with self.state.try_busy("A factory reset is performed."):
            with self.assertRaises(AlreadyBusyError) as ctx:
                commands.save_configuration(self.state, self.config.with_name("Kitchen lamp"))
        self.assertEqual(ctx.exception.reason, "A factory reset is performed.")
        self.assertEqual(self.state.get_config(), self.config)


if __name__ == '__main__':
    unittest.main()
