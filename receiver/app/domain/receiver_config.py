"""Normalised persistent receiver configuration and its string forms."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

from receiver.app.constants import AckMode, SettlementOutcome
from receiver.app.domain.errors import ReceiverBuildError


@dataclass(frozen=True)
class ReceiverConfiguration:
    """What a receiver flow was asked to support.

    Both construction paths (builder methods and property map) end up here, so two
    receivers with equal configurations behave the same at runtime.
    """

    ack_mode: AckMode = AckMode.AUTO
    required_outcomes: frozenset[SettlementOutcome] = frozenset()

    @property
    def supported_outcomes(self) -> frozenset[SettlementOutcome]:
        # ACCEPTED is always available.
        return self.required_outcomes | {SettlementOutcome.ACCEPTED}


def coerce_outcome(value: Any) -> SettlementOutcome:
    if isinstance(value, SettlementOutcome):
        return value
    name = str(value).strip().upper()
    try:
        return SettlementOutcome(name)
    except ValueError:
        raise ReceiverBuildError(f"unknown settlement outcome: {str(value).strip()!r}") from None


def parse_outcomes(value: str) -> frozenset[SettlementOutcome]:
    """Parse a comma-separated outcome list such as "FAILED,REJECTED"."""
    return frozenset(coerce_outcome(token) for token in value.split(",") if token.strip())


def format_outcomes(outcomes: Iterable[SettlementOutcome]) -> str:
    return ",".join(sorted(outcome.value for outcome in outcomes))


def parse_ack_mode(value: Any) -> AckMode:
    if isinstance(value, AckMode):
        return value
    try:
        return AckMode(str(value).strip().lower())
    except ValueError:
        raise ReceiverBuildError(f"unknown acknowledgement strategy: {value!r}") from None
