from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from routerfleet.config import (
    DEFAULT_TASK_TIMEOUT_SECONDS,
    ConfigurationError,
    FanoutConfig,
    InvalidConfigurationValueError,
    MissingConfigurationError,
    get_device_auth,
    get_fanout_config,
    parse_scheme,
    require_env_vars,
)

if TYPE_CHECKING:
    from pathlib import Path

_ENV_VARS = (
    "ROUTERFLEET_USERNAME",
    "ROUTERFLEET_PASSWORD",
    "ROUTERFLEET_SCHEME",
    "ROUTERFLEET_VERIFY_TLS",
    "ROUTERFLEET_CA_BUNDLE",
    "ROUTERFLEET_CONNECT_TIMEOUT",
    "ROUTERFLEET_RECEIVE_TIMEOUT",
    "ROUTERFLEET_MAX_CONCURRENCY",
    "ROUTERFLEET_TASK_TIMEOUT",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_require_env_vars_lists_every_missing_name(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ROUTERFLEET_USERNAME", "  ")

    with pytest.raises(MissingConfigurationError) as exc:
        require_env_vars(["ROUTERFLEET_USERNAME", "ROUTERFLEET_PASSWORD"])

    assert "ROUTERFLEET_PASSWORD, ROUTERFLEET_USERNAME" in str(exc.value)


def test_get_device_auth_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ROUTERFLEET_USERNAME", "admin")
    monkeypatch.setenv("ROUTERFLEET_PASSWORD", "secret")

    auth = get_device_auth()

    assert auth.username == "admin"
    assert auth.password == "secret"
    assert auth.scheme == "https"
    assert auth.verify is True
    assert auth.connect_timeout_seconds == 5.0
    assert auth.receive_timeout_seconds == 15.0
    assert auth.retry.total == 2
    assert auth.retry.backoff_factor == 0.25
    assert "secret" not in repr(auth)


def test_get_device_auth_reads_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ROUTERFLEET_USERNAME", "admin")
    monkeypatch.setenv("ROUTERFLEET_PASSWORD", "secret")
    monkeypatch.setenv("ROUTERFLEET_SCHEME", "HTTP")
    monkeypatch.setenv("ROUTERFLEET_VERIFY_TLS", "no")
    monkeypatch.setenv("ROUTERFLEET_RECEIVE_TIMEOUT", "30")

    auth = get_device_auth()
    resilience = auth.resilience(name="routeros:core-1")

    assert auth.scheme == "http"
    assert auth.verify is False
    assert resilience.verify is False
    assert resilience.timeout_seconds == 30.0
    assert resilience.connect_timeout_seconds == 5.0


def test_get_device_auth_requires_credentials() -> None:
    with pytest.raises(MissingConfigurationError):
        get_device_auth()


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("ROUTERFLEET_SCHEME", "ftp"),
        ("ROUTERFLEET_VERIFY_TLS", "maybe"),
        ("ROUTERFLEET_CONNECT_TIMEOUT", "soon"),
    ],
)
def test_invalid_values_are_reported(
    monkeypatch: pytest.MonkeyPatch, name: str, value: str
) -> None:
    monkeypatch.setenv("ROUTERFLEET_USERNAME", "admin")
    monkeypatch.setenv("ROUTERFLEET_PASSWORD", "secret")
    monkeypatch.setenv(name, value)

    with pytest.raises(InvalidConfigurationValueError) as exc:
        get_device_auth()

    assert name in str(exc.value)


def test_parse_scheme() -> None:
    assert parse_scheme(" https ") == "https"
    with pytest.raises(ConfigurationError):
        parse_scheme("gopher")


def test_get_fanout_config(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ROUTERFLEET_MAX_CONCURRENCY", "8")

    config = get_fanout_config()

    assert config.max_concurrency == 8
    assert config.task_timeout_seconds == DEFAULT_TASK_TIMEOUT_SECONDS


def test_fanout_config_defaults_to_cpu_count() -> None:
    assert get_fanout_config().max_concurrency >= 1


@pytest.mark.parametrize(
    ("max_concurrency", "timeout"),
    [(0, 20.0), (4, 0.0)],
)
def test_fanout_config_rejects_invalid_values(max_concurrency: int, timeout: float) -> None:
    with pytest.raises(ConfigurationError):
        FanoutConfig(max_concurrency=max_concurrency, task_timeout_seconds=timeout)


def test_get_device_auth_reads_ca_bundle(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    bundle = tmp_path / "routers-ca.pem"
    bundle.write_text("-----BEGIN CERTIFICATE-----\n")
    monkeypatch.setenv("ROUTERFLEET_USERNAME", "admin")
    monkeypatch.setenv("ROUTERFLEET_PASSWORD", "secret")
    monkeypatch.setenv("ROUTERFLEET_CA_BUNDLE", str(bundle))

    auth = get_device_auth()

    assert auth.verify is True
    assert auth.ca_bundle == str(bundle)
    assert auth.resilience(name="routeros:core-1").ca_bundle == str(bundle)


def test_missing_ca_bundle_file_is_reported(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setenv("ROUTERFLEET_USERNAME", "admin")
    monkeypatch.setenv("ROUTERFLEET_PASSWORD", "secret")
    monkeypatch.setenv("ROUTERFLEET_CA_BUNDLE", str(tmp_path / "absent.pem"))

    with pytest.raises(InvalidConfigurationValueError) as exc:
        get_device_auth()

    assert "ROUTERFLEET_CA_BUNDLE" in str(exc.value)
