from __future__ import annotations

import pytest
from pydantic import ValidationError

from receiver.app.config.settings import Settings
from receiver.app.constants import DEFAULT_BROKER_HOST, DEFAULT_QUEUE_NAME, SettlementOutcome


def test_defaults_point_at_local_broker():
    settings = Settings(_env_file=None)

    assert settings.broker_backend == "solace"
    assert settings.broker_host == DEFAULT_BROKER_HOST
    assert settings.broker_vpn == "default"
    assert settings.broker_username == "default"
    assert settings.broker_password == "default"
    assert settings.queue_name == DEFAULT_QUEUE_NAME
    assert settings.settlement_outcome is SettlementOutcome.ACCEPTED
    assert settings.outcome_configuration == "builder"
    assert settings.max_connection_attempts == 1


def test_solace_env_vars_win_over_broker_aliases(monkeypatch):
    monkeypatch.setenv("SOLACE_HOST", "tcp://broker-a:55555")
    monkeypatch.setenv("BROKER_HOST", "tcp://broker-b:55555")
    monkeypatch.setenv("BROKER_VPN", "orders")
    monkeypatch.setenv("SOLACE_USERNAME", "app")
    monkeypatch.setenv("SOLACE_PASSWORD", "secret")

    settings = Settings(_env_file=None)

    assert settings.broker_host == "tcp://broker-a:55555"
    assert settings.broker_vpn == "orders"
    properties = settings.connection_properties()
    assert properties.hosts == ("tcp://broker-a:55555",)
    assert properties.username == "app"
    assert "secret" not in repr(properties)


def test_outcome_and_backend_are_normalised(monkeypatch):
    monkeypatch.setenv("SETTLEMENT_OUTCOME", " rejected ")
    monkeypatch.setenv("BROKER_BACKEND", "RabbitMQ")
    monkeypatch.setenv("OUTCOME_CONFIGURATION", "Properties")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    settings = Settings(_env_file=None)

    assert settings.settlement_outcome is SettlementOutcome.REJECTED
    assert settings.broker_backend == "rabbitmq"
    assert settings.outcome_configuration == "properties"
    assert settings.log_level == "DEBUG"


@pytest.mark.parametrize(
    "name,value",
    [
        ("SETTLEMENT_OUTCOME", "POSTPONED"),
        ("BROKER_BACKEND", "kafka"),
        ("OUTCOME_CONFIGURATION", "yaml"),
        ("TERMINATION_GRACE_PERIOD_SECONDS", "-1"),
        ("MAX_CONNECTION_ATTEMPTS", "0"),
        ("LOG_LEVEL", "VERBOSE"),
    ],
)
def test_invalid_values_are_rejected(monkeypatch, name, value):
    monkeypatch.setenv(name, value)

    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_env_file_is_read(tmp_path, monkeypatch):
    (tmp_path / ".env").write_text("QUEUE_NAME=orders-queue\nSOLACE_VPN=orders\n")
    monkeypatch.chdir(tmp_path)

    settings = Settings()

    assert settings.queue_name == "orders-queue"
    assert settings.broker_vpn == "orders"
