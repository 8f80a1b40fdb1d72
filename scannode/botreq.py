"""Bot request and result messages and the channels that carry results."""

from __future__ import annotations

import queue
from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from typing import Dict, List, Optional

from .agents import AgentConfig


class ResponseStatus(IntEnum):
    UNKNOWN = 0
    ERROR = 1
    SUCCESS = 2


@dataclass
class Finding:
    alert_id: str = ""
    name: str = ""
    description: str = ""
    metadata: Dict[str, str] = field(default_factory=dict)
    addresses: List[str] = field(default_factory=list)
    related_alerts: List[str] = field(default_factory=list)


@dataclass
class AlertSource:
    """Where an alert came from; ``bot_id`` is None when the source bot is unknown."""

    bot_id: Optional[str] = None


@dataclass
class Alert:
    hash: str = ""
    created_at: str = ""
    source: Optional[AlertSource] = None


@dataclass
class AlertEvent:
    alert: Optional[Alert] = None
    timestamps: Dict[str, datetime] = field(default_factory=dict)


@dataclass
class EvaluateTxRequest:
    request_id: str = ""
    tx_hash: str = ""
    block_number: str = ""
    timestamps: Dict[str, datetime] = field(default_factory=dict)


@dataclass
class EvaluateBlockRequest:
    request_id: str = ""
    block_number: str = ""
    timestamps: Dict[str, datetime] = field(default_factory=dict)


@dataclass
class EvaluateAlertRequest:
    request_id: str = ""
    target_bot_id: str = ""
    event: AlertEvent = field(default_factory=AlertEvent)


@dataclass
class _EvaluateResponse:
    status: ResponseStatus = ResponseStatus.UNKNOWN
    findings: List[Optional[Finding]] = field(default_factory=list)
    metadata: Dict[str, str] = field(default_factory=dict)
    timestamp: str = ""
    latency_ms: int = 0
    errors: List[str] = field(default_factory=list)


@dataclass
class EvaluateTxResponse(_EvaluateResponse):
    pass


@dataclass
class EvaluateBlockResponse(_EvaluateResponse):
    pass


@dataclass
class EvaluateAlertResponse(_EvaluateResponse):
    pass


@dataclass
class InitializeResponse:
    """A bot's answer to initialization.

    ``subscriptions`` lists the ids of the bots whose alerts the bot wants;
    None means the bot sent no alert configuration at all.
    """

    status: ResponseStatus = ResponseStatus.UNKNOWN
    subscriptions: Optional[List[str]] = None
    errors: List[str] = field(default_factory=list)


@dataclass
class TxRequest:
    original: EvaluateTxRequest


@dataclass
class BlockRequest:
    original: EvaluateBlockRequest


@dataclass
class CombinationRequest:
    original: EvaluateAlertRequest


@dataclass
class TxResult:
    agent_config: AgentConfig
    request: EvaluateTxRequest
    response: EvaluateTxResponse
    timestamps: Dict[str, datetime] = field(default_factory=dict)


@dataclass
class BlockResult:
    agent_config: AgentConfig
    request: EvaluateBlockRequest
    response: EvaluateBlockResponse
    timestamps: Dict[str, datetime] = field(default_factory=dict)


@dataclass
class CombinationAlertResult:
    agent_config: AgentConfig
    request: EvaluateAlertRequest
    response: EvaluateAlertResponse
    timestamps: Dict[str, datetime] = field(default_factory=dict)


@dataclass
class ResultChannels:
    """Queues that carry bot results from the bot clients to their consumer."""

    tx: "queue.Queue[TxResult]" = field(default_factory=queue.Queue)
    block: "queue.Queue[BlockResult]" = field(default_factory=queue.Queue)
    combination_alert: "queue.Queue[CombinationAlertResult]" = field(
        default_factory=queue.Queue
    )


def make_result_channels() -> ResultChannels:
    """Make a fresh set of result queues."""
    return ResultChannels()