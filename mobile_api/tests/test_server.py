import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

from fastapi.testclient import TestClient

from mobile_api.configs import DeviceConfig
from mobile_api.errors import CommandError, PersistenceError
from mobile_api.home import SifisHome
from mobile_api.logger import Logger
from mobile_api.security import SecurityKey
from mobile_api.server import create_app, error_body
from mobile_api.state import DeviceState

CONFIRM = "I really want to perform a factory reset"


class ServerTestCase(unittest.TestCase):
    def setUp(self):
        Logger.enabled = False
        self.tmp = tempfile.TemporaryDirectory()
        self.home = SifisHome(Path(self.tmp.name))
        self.info = self.home.new_info("Smart Lamp")
        self.home.save_info(self.info)
        self.state = DeviceState.load(self.home)
        self.on_shutdown = MagicMock()
        self.client = TestClient(create_app(self.state, on_shutdown=self.on_shutdown))
        self.headers = {'x-api-key': self.info.authorization_key.hex()}

        self.run_script = patch('mobile_api.commands.run_script', return_value="")
        self.mock_run_script = self.run_script.start()

    def tearDown(self):
        self.run_script.stop()
        self.tmp.cleanup()
        Logger.enabled = True

    def assertError(self, response, code, description=None):
        self.assertEqual(response.status_code, code)
        error = response.json()["error"]
        self.assertEqual(error["code"], code)
        if description is not None:
            self.assertEqual(error["description"], description)


class TestAuthorization(ServerTestCase):
    URL = "/api/v1/device/configuration"

    def test_correct_hex_key(self):
        response = self.client.get(self.URL, headers=self.headers)
        # Not configured yet, but access was granted
        self.assertError(response, 404, "This device has not been configured yet.")

    def test_correct_base64_key(self):
        headers = {'x-api-key': self.info.authorization_key.base64()}
        self.assertEqual(self.client.get(self.URL, headers=headers).status_code, 404)

    def test_invalid_key(self):
        response = self.client.get(self.URL, headers={'x-api-key': "short"})
        self.assertError(response, 400, "Invalid API key")
        self.assertEqual(response.json()["error"]["reason"], "Bad Request")

    def test_wrong_key(self):
        response = self.client.get(self.URL, headers={'x-api-key': SecurityKey.new().hex()})
        self.assertError(response, 401, "The request requires user authentication.")
        self.assertEqual(response.json()["error"]["reason"], "Unauthorized")

    def test_missing_header(self):
        self.assertError(self.client.get(self.URL), 400, "Missing `x-api-key` header.")

    def test_commands_require_key(self):
        for url in ("/api/v1/command/restart", "/api/v1/command/shutdown",
                    f"/api/v1/command/factory_reset?confirm={CONFIRM}"):
            self.assertError(self.client.get(url), 400, "Missing `x-api-key` header.")
        self.mock_run_script.assert_not_called()

    def test_device_info_is_public(self):
        response = self.client.get("/api/v1/device/info")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {
            "product_name": "Smart Lamp",
            "uuid": str(self.info.uuid),
        })
        self.assertNotIn(self.info.authorization_key.hex(), response.text)


class TestConfiguration(ServerTestCase):
    URL = "/api/v1/device/configuration"

    def test_put_and_get(self):
        config = DeviceConfig(name="Living room lamp", dht_shared_key=SecurityKey.new())
        response = self.client.put(self.URL, headers=self.headers, json=config.to_dict())
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"code": 200, "message": "Configuration saved."})

        response = self.client.get(self.URL, headers=self.headers)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), config.to_dict())
        self.assertEqual(self.home.load_config(), config)

    def test_put_invalid_body(self):
        for body in ({"name": "Lamp"}, {"name": "Lamp", "dht_shared_key": "00"}):
            response = self.client.put(self.URL, headers=self.headers, json=body)
            self.assertError(response, 400)
        self.assertIsNone(self.state.get_config())

    def test_put_not_an_object(self):
        response = self.client.put(self.URL, headers=self.headers, json=["Lamp"])
        self.assertError(response, 400)

    def test_put_while_busy(self):
        config = DeviceConfig(name="Lamp", dht_shared_key=SecurityKey.new())
        with self.state.try_busy("The device is restarting."):
            response = self.client.put(self.URL, headers=self.headers, json=config.to_dict())
        self.assertError(response, 503, "The device is restarting.")
        self.assertEqual(response.json()["error"]["reason"], "Service Unavailable")
        self.assertIsNone(self.state.get_config())

    def test_get_while_busy(self):
        config = DeviceConfig(name="Lamp", dht_shared_key=SecurityKey.new())
        self.state.set_config(config)
        with self.state.try_busy("The device is restarting."):
            response = self.client.get(self.URL, headers=self.headers)
        self.assertEqual(response.status_code, 200)

    def test_put_persistence_failure(self):
        config = DeviceConfig(name="Lamp", dht_shared_key=SecurityKey.new())
        with patch.object(SifisHome, 'save_config', side_effect=PersistenceError("disk full")):
            response = self.client.put(self.URL, headers=self.headers, json=config.to_dict())
        self.assertError(response, 500, "disk full")
        self.assertIsNone(self.state.get_config())
        self.assertIsNone(self.state.busy())


class TestCommands(ServerTestCase):
    def test_factory_reset_requires_confirm(self):
        config = DeviceConfig(name="Lamp", dht_shared_key=SecurityKey.new())
        self.state.set_config(config)

        for url in ("/api/v1/command/factory_reset", "/api/v1/command/factory_reset?confirm=yes"):
            response = self.client.get(url, headers=self.headers)
            self.assertError(response, 400, "The required confirm parameter was not correct or set.")
        self.assertTrue(self.home.config_file_path().exists())
        self.mock_run_script.assert_not_called()

    def test_factory_reset(self):
        self.state.set_config(DeviceConfig(name="Lamp", dht_shared_key=SecurityKey.new()))
        response = self.client.get(
            "/api/v1/command/factory_reset",
            params={"confirm": CONFIRM},
            headers=self.headers
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"code": 200, "message": "Factory reset complete."})
        self.assertFalse(self.home.config_file_path().exists())
        self.mock_run_script.assert_called_once_with("factory_reset.sh")
        self.on_shutdown.assert_not_called()

    def test_restart(self):
        response = self.client.get("/api/v1/command/restart", headers=self.headers)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"code": 200, "message": "System will now restart."})
        self.mock_run_script.assert_called_once_with("restart.sh")
        self.on_shutdown.assert_called_once()

    def test_shutdown(self):
        response = self.client.get("/api/v1/command/shutdown", headers=self.headers)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"code": 200, "message": "System will now power off."})
        self.mock_run_script.assert_called_once_with("shutdown.sh")
        self.on_shutdown.assert_called_once()

    def test_busy_reason_is_verbatim(self):
        with self.state.try_busy("A factory reset is performed."):
            for url in ("/api/v1/command/restart", "/api/v1/command/shutdown"):
                response = self.client.get(url, headers=self.headers)
                self.assertError(response, 503, "A factory reset is performed.")
        self.mock_run_script.assert_not_called()
        self.on_shutdown.assert_not_called()

    def test_script_failure(self):
        self.mock_run_script.side_effect = CommandError("restart.sh exited with status 1: nope")
        response = self.client.get("/api/v1/command/restart", headers=self.headers)
        self.assertError(response, 500, "restart.sh exited with status 1: nope")
        self.on_shutdown.assert_not_called()
        self.assertIsNone(self.state.busy())


class TestErrorBody(unittest.TestCase):
    def test_error_body(self):
        self.assertEqual(error_body(503, "Busy"), {
            "error": {"code": 503, "reason": "Service Unavailable", "description": "Busy"}
        })


if __name__ == '__main__':
    unittest.main()
