from loguru import logger
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from receiver.app.constants import (
    DEFAULT_BROKER_HOST,
    DEFAULT_DELIVERY_QUEUE_SIZE,
    DEFAULT_GRACE_PERIOD_SECONDS,
    DEFAULT_QUEUE_NAME,
    SettlementOutcome,
)
from receiver.app.domain.models import ConnectionProperties

BROKER_BACKENDS = ("solace", "rabbitmq", "inmemory")
OUTCOME_CONFIGURATIONS = ("builder", "properties")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    broker_backend: str = Field("solace", validation_alias="BROKER_BACKEND")
    broker_host: str = Field(DEFAULT_BROKER_HOST, validation_alias=AliasChoices("SOLACE_HOST", "BROKER_HOST"))
    broker_vpn: str = Field("default", validation_alias=AliasChoices("SOLACE_VPN", "BROKER_VPN"))
    broker_username: str = Field("default", validation_alias=AliasChoices("SOLACE_USERNAME", "BROKER_USERNAME"))
    broker_password: str = Field("default", validation_alias=AliasChoices("SOLACE_PASSWORD", "BROKER_PASSWORD"))

    # Must already exist on the broker; the receiver never provisions it.
    queue_name: str = Field(DEFAULT_QUEUE_NAME, validation_alias="QUEUE_NAME")
    settlement_outcome: SettlementOutcome = Field(SettlementOutcome.ACCEPTED, validation_alias="SETTLEMENT_OUTCOME")
    outcome_configuration: str = Field("builder", validation_alias="OUTCOME_CONFIGURATION")

    termination_grace_period_seconds: float = Field(
        DEFAULT_GRACE_PERIOD_SECONDS,
        ge=0,
        validation_alias="TERMINATION_GRACE_PERIOD_SECONDS",
    )
    delivery_queue_size: int = Field(DEFAULT_DELIVERY_QUEUE_SIZE, ge=1, validation_alias="DELIVERY_QUEUE_SIZE")
    prefetch_count: int = Field(16, ge=1, validation_alias="PREFETCH_COUNT")

    # One attempt keeps connect failures fatal.
    max_connection_attempts: int = Field(1, ge=1, validation_alias="MAX_CONNECTION_ATTEMPTS")
    initial_backoff_seconds: float = Field(1.0, ge=0, validation_alias="INITIAL_BACKOFF_SECONDS")
    max_backoff_seconds: float = Field(30.0, ge=0, validation_alias="MAX_BACKOFF_SECONDS")
    backoff_multiplier: float = Field(2.0, ge=1, validation_alias="BACKOFF_MULTIPLIER")

    log_level: str = Field("INFO", validation_alias="LOG_LEVEL")

    @field_validator("settlement_outcome", mode="before")
    @classmethod
    def _normalise_outcome(cls, value: object) -> object:
        return value.strip().upper() if isinstance(value, str) else value

    @field_validator("broker_backend")
    @classmethod
    def _check_backend(cls, value: str) -> str:
        backend = value.strip().lower()
        if backend not in BROKER_BACKENDS:
            raise ValueError(f"broker backend must be one of {', '.join(BROKER_BACKENDS)}")
        return backend

    @field_validator("outcome_configuration")
    @classmethod
    def _check_outcome_configuration(cls, value: str) -> str:
        method = value.strip().lower()
        if method not in OUTCOME_CONFIGURATIONS:
            raise ValueError(f"outcome configuration must be one of {', '.join(OUTCOME_CONFIGURATIONS)}")
        return method

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        try:
            logger.level(level)
        except ValueError:
            raise ValueError(f"unknown log level: {value!r}") from None
        return level

    def connection_properties(self) -> ConnectionProperties:
        return ConnectionProperties.from_host_list(
            self.broker_host,
            vpn_name=self.broker_vpn,
            username=self.broker_username,
            password=self.broker_password,
        )
