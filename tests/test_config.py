"""
Unit tests for configuration loading and helpers.
"""

import json

from wagate.automation.base import ClientOptions
from wagate.config.loader import camel_to_snake, load_config, save_config, snake_to_camel
from wagate.config.schema import AutomationConfig, Config


class TestKeyConversion:
    def test_camel_to_snake(self):
        assert camel_to_snake("maxAttachmentSize") == "max_attachment_size"
        assert camel_to_snake("baseUrl") == "base_url"

    def test_snake_to_camel(self):
        assert snake_to_camel("set_messages_as_seen") == "setMessagesAsSeen"


class TestLoadConfig:
    def test_missing_file_uses_defaults(self, tmp_path):
        config = load_config(tmp_path / "missing.json")
        assert config.sessions.folder_path == "./sessions"
        assert config.sessions.recover_sessions is True
        assert config.sessions.max_attachment_size == 10_000_000

    def test_camel_case_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({
            "sessions": {"folderPath": "/data/sessions", "setMessagesAsSeen": True},
            "webhook": {"baseUrl": "http://hook.test", "disabledCallbacks": ["message_ack"]},
            "automation": {"webVersion": "2.2412.54", "webVersionCacheType": "remote"},
        }))

        config = load_config(path)

        assert config.sessions.folder_path == "/data/sessions"
        assert config.sessions.set_messages_as_seen is True
        assert config.webhook.base_url == "http://hook.test"
        assert not config.is_event_enabled("message_ack")
        assert config.is_event_enabled("message")
        assert config.automation.web_version_cache_type == "remote"

    def test_broken_file_falls_back(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json")
        assert load_config(path).webhook.base_url == ""

    def test_save_writes_camel_case(self, tmp_path):
        path = tmp_path / "config.json"
        config = Config()
        config.webhook.api_key = "secret"

        save_config(config, path)

        data = json.loads(path.read_text())
        assert data["webhook"]["apiKey"] == "secret"
        assert "maxAttachmentSize" in data["sessions"]
        assert load_config(path).webhook.api_key == "secret"


class TestConfigHelpers:
    def test_webhook_url_override(self, monkeypatch):
        config = Config()
        config.webhook.base_url = "http://default.test"
        monkeypatch.setenv("ALICE_WEBHOOK_URL", "http://alice.test")
        monkeypatch.delenv("BOB_WEBHOOK_URL", raising=False)

        assert config.webhook_url_for("alice") == "http://alice.test"
        assert config.webhook_url_for("bob") == "http://default.test"

    def test_web_version_cache(self):
        config = Config()
        assert config.web_version_cache() is None

        config.automation = AutomationConfig(web_version="2.2412.54", web_version_cache_type="remote")
        assert config.web_version_cache() == {
            "type": "remote",
            "remotePath": "https://raw.githubusercontent.com/wppconnect-team/wa-version/main/html/2.2412.54.html",
        }

        config.automation.web_version_cache_type = "local"
        assert config.web_version_cache() == {"type": "local"}

        config.automation.web_version_cache_type = "none"
        assert config.web_version_cache() == {"type": "none"}

    def test_executable_path(self, monkeypatch):
        monkeypatch.setenv("CHROME_BIN", "/usr/bin/chromium")
        config = Config()
        assert config.executable_path == "/usr/bin/chromium"

        config.automation.chrome_bin = "/opt/chrome"
        assert config.executable_path == "/opt/chrome"

    def test_storage_root_expands_user(self):
        config = Config()
        config.sessions.folder_path = "~/wa"
        assert "~" not in str(config.storage_root)


class TestClientOptions:
    def test_payload(self):
        options = ClientOptions(
            client_id="alice",
            data_path="/data/sessions",
            executable_path="/usr/bin/chromium",
            web_version="2.2412.54",
            web_version_cache={"type": "local"},
        )

        payload = options.to_payload()

        assert payload["authStrategy"] == {
            "type": "local",
            "clientId": "alice",
            "dataPath": "/data/sessions",
            "keepOnLogout": True,
        }
        assert payload["puppeteer"]["executablePath"] == "/usr/bin/chromium"
        assert "--no-sandbox" in payload["puppeteer"]["args"]
        assert payload["webVersion"] == "2.2412.54"
        assert payload["webVersionCache"] == {"type": "local"}

    def test_payload_without_version(self):
        payload = ClientOptions(client_id="alice", data_path="/d").to_payload()
        assert "webVersion" not in payload
        assert "webVersionCache" not in payload
