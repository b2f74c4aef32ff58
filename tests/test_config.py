"""Tests for environment-driven configuration and secret resolution."""

import json
import sys
import types

import pytest
import requests

from identity_console import config as config_module
from identity_console import secrets
from identity_console.config import DEFAULT_CACHE_PATH, load_config
from identity_console.exceptions import ConfigError

_ENV_VARS = (
    "CONSOLE_BACKEND_CANDIDATES",
    "CONSOLE_BACKEND_FALLBACK",
    "CONSOLE_DISCOVERY_TIMEOUT",
    "CONSOLE_REQUEST_TIMEOUT",
    "CONSOLE_PAGE_SIZE",
    "CONSOLE_CACHE_PATH",
    "CONSOLE_SYNC_INTERVAL_MIN",
    "CONSOLE_STALE_AFTER_MIN",
    "SPECTRO_API_BASE_URL",
    "SPECTRO_API_KEY",
    "RELAY_HOST",
    "RELAY_PORT",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    # A stray .env file must not leak into these tests
    monkeypatch.setattr(config_module, "load_dotenv", lambda *a, **kw: False)


def test__load_config__defaults(monkeypatch) -> None:
    monkeypatch.setattr(config_module.socket, "gethostname", lambda: "workstation")

    cfg = load_config()

    assert cfg.backend.candidates == ["http://localhost:3001", "http://workstation:3001"]
    assert cfg.backend.fallback is None
    assert cfg.backend.discovery_timeout == 5.0
    assert cfg.backend.page_size == 50
    assert cfg.cache.path == DEFAULT_CACHE_PATH
    assert cfg.scheduler.sync_interval_min == 60
    assert cfg.scheduler.stale_after_min == 60
    assert cfg.relay.api_base_url == "https://api.spectrocloud.com/v1"
    assert cfg.relay.port == 3001
    assert cfg.log_level == "INFO"


def test__load_config__from_env(monkeypatch) -> None:
    monkeypatch.setenv("CONSOLE_BACKEND_CANDIDATES", " http://a:3001/ , ,http://b:3001")
    monkeypatch.setenv("CONSOLE_BACKEND_FALLBACK", "http://c:3001")
    monkeypatch.setenv("CONSOLE_DISCOVERY_TIMEOUT", "2.5")
    monkeypatch.setenv("CONSOLE_PAGE_SIZE", "20")
    monkeypatch.setenv("CONSOLE_CACHE_PATH", "/tmp/console.db")
    monkeypatch.setenv("CONSOLE_SYNC_INTERVAL_MIN", "15")
    monkeypatch.setenv("CONSOLE_STALE_AFTER_MIN", "30")
    monkeypatch.setenv("SPECTRO_API_BASE_URL", "https://spectro.example/v1/")
    monkeypatch.setenv("SPECTRO_API_KEY", "plain-key")
    monkeypatch.setenv("RELAY_PORT", "8080")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")

    cfg = load_config()

    assert cfg.backend.candidates == ["http://a:3001", "http://b:3001"]
    assert cfg.backend.fallback == "http://c:3001"
    assert cfg.backend.discovery_timeout == 2.5
    assert cfg.backend.page_size == 20
    assert cfg.cache.path == "/tmp/console.db"
    assert cfg.scheduler.sync_interval_min == 15
    assert cfg.scheduler.stale_after_min == 30
    assert cfg.relay.api_base_url == "https://spectro.example/v1"
    assert cfg.relay.api_key == "plain-key"
    assert cfg.relay.port == 8080
    assert cfg.log_level == "DEBUG"


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("CONSOLE_PAGE_SIZE", "fifty"),
        ("CONSOLE_DISCOVERY_TIMEOUT", "soon"),
        ("RELAY_PORT", "3001.5"),
    ],
)
def test__load_config__rejects_bad_numbers(monkeypatch, name: str, value: str) -> None:
    monkeypatch.setenv(name, value)

    with pytest.raises(ConfigError, match=name):
        load_config()


def test__load_config__leaves_secret_reference_unresolved(monkeypatch) -> None:
    def fail(ref):
        raise AssertionError("secret resolved during load_config")

    monkeypatch.setenv("SPECTRO_API_KEY", "aws-secret://spectro#apiKey")
    monkeypatch.setitem(secrets._RESOLVERS, "aws-secret", fail)

    assert load_config().relay.api_key == "aws-secret://spectro#apiKey"


def test__resolve_secret__literal_passthrough() -> None:
    assert secrets.resolve_secret("abc123") == "abc123"
    assert secrets.resolve_secret("") == ""


def test__is_secret_reference() -> None:
    assert secrets.is_secret_reference("aws-secret://x")
    assert secrets.is_secret_reference("gcp-secret://x")
    assert not secrets.is_secret_reference("https://x")


def test__resolve_secret__empty_reference_rejected() -> None:
    with pytest.raises(ConfigError):
        secrets.resolve_secret("gcp-secret://")


def test__parse_reference() -> None:
    assert secrets.parse_reference("aws-secret://relay#apiKey") == ("aws-secret", "relay#apiKey")
    assert secrets.parse_reference("vault://relay") is None
    assert secrets.parse_reference("plain-key") is None


def test__gcp_project_from_metadata__unreachable(monkeypatch) -> None:
    def unreachable(*args, **kwargs):
        raise requests.ConnectionError("no metadata server")

    monkeypatch.setattr(secrets.requests, "get", unreachable)

    with pytest.raises(ConfigError, match="GCP_PROJECT_ID"):
        secrets._gcp_project_from_metadata()


class _FakeSecretsManager:
    def __init__(self, secret_string: str) -> None:
        self.secret_string = secret_string
        self.requested: list[str] = []

    def get_secret_value(self, SecretId: str) -> dict:
        self.requested.append(SecretId)
        return {"SecretString": self.secret_string}


@pytest.fixture
def fake_boto3(monkeypatch):
    manager = _FakeSecretsManager(json.dumps({"apiKey": "from-aws"}))
    module = types.SimpleNamespace(client=lambda service, region_name: manager)
    monkeypatch.setitem(sys.modules, "boto3", module)
    return manager


def test__resolve_secret__aws_json_field(fake_boto3) -> None:
    assert secrets.resolve_secret("aws-secret://spectro-relay#apiKey") == "from-aws"
    assert fake_boto3.requested == ["spectro-relay"]


def test__resolve_secret__aws_whole_string(fake_boto3) -> None:
    assert secrets.resolve_secret("aws-secret://spectro-relay") == '{"apiKey": "from-aws"}'


def test__resolve_secret__aws_missing_field(fake_boto3) -> None:
    with pytest.raises(ConfigError, match="token"):
        secrets.resolve_secret("aws-secret://spectro-relay#token")
