"""Fan-out of evaluation requests to the current detection bots."""

from __future__ import annotations

import logging
import queue
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Sequence

from .bot_client import SUBJECT_METRIC_AGENT, BotClient
from .botreq import (
    BlockRequest,
    CombinationRequest,
    EvaluateAlertRequest,
    EvaluateBlockRequest,
    EvaluateTxRequest,
    TxRequest,
)
from .botvalidation import decode_block_number

logger = logging.getLogger(__name__)

SUBJECT_SCANNER_BLOCK = "scanner.block"
SUBJECT_SCANNER_ALERT = "scanner.alert"

METRIC_TX_DROP = "agent.tx.drop"
METRIC_BLOCK_DROP = "agent.block.drop"
METRIC_COMBINER_DROP = "agent.combiner.drop"


class HealthStatus(str, Enum):
    OK = "ok"
    FAILING = "failing"
    INFO = "info"


@dataclass(frozen=True)
class HealthReport:
    name: str
    status: HealthStatus
    details: str = ""


class _BotPool(Protocol):
    def wait_for_all(self) -> None: ...

    def get_current_bot_clients(self) -> Sequence[BotClient]: ...


class _MessageClient(Protocol):
    def publish(self, subject: str, payload: Any) -> None: ...


def _agent_metric(bot_id: str, name: str, value: float) -> Dict[str, Any]:
    return {"agent_id": bot_id, "name": name, "value": float(value)}


class Sender:
    """Sends requests to all bots that should take them."""

    name = "sender"

    def __init__(self, msg_client: _MessageClient, bot_pool: _BotPool):
        self._msg_client = msg_client
        self._bot_pool = bot_pool

    def health(self) -> List[HealthReport]:
        """Report the number of bots and how many of them are lagging."""
        bots = self._bot_pool.get_current_bot_clients()
        full_count = sum(1 for bot in bots if bot.tx_buffer_is_full())
        status = HealthStatus.OK if bots else HealthStatus.FAILING
        return [
            HealthReport(name="agents.total", status=status, details=str(len(bots))),
            HealthReport(name="agents.lagging", status=HealthStatus.INFO, details=str(full_count)),
        ]

    def _send_metrics(self, metrics: List[Dict[str, Any]]) -> None:
        if metrics:
            self._msg_client.publish(SUBJECT_METRIC_AGENT, metrics)

    @staticmethod
    def _offer(bot: BotClient, requests: "queue.Queue[Any]", item: Any) -> Optional[bool]:
        """Queue ``item`` for the bot; None if it is closed, False if its buffer is full."""
        if bot.is_closed:
            return None
        try:
            requests.put_nowait(item)
        except queue.Full:
            return False
        return True

    def send_evaluate_tx_request(self, req: EvaluateTxRequest) -> None:
        """Send the request to every active bot that should process its block."""
        start = time.monotonic()
        logger.debug("send_evaluate_tx_request: tx=%s", req.tx_hash)
        self._bot_pool.wait_for_all()

        metrics: List[Dict[str, Any]] = []
        for bot in self._bot_pool.get_current_bot_clients():
            if not bot.should_process_block(req.block_number):
                continue
            bot_config = bot.config
            outcome = self._offer(bot, bot.tx_requests, TxRequest(original=req))
            if outcome is None:
                logger.debug("bot %s is closed - skipping", bot_config.id)
            elif not outcome:
                logger.debug("bot %s tx request buffer is full - skipping", bot_config.id)
                metrics.append(_agent_metric(bot_config.id, METRIC_TX_DROP, 1))
        self._send_metrics(metrics)
        logger.debug("finished send_evaluate_tx_request in %.3fs", time.monotonic() - start)

    def send_evaluate_block_request(self, req: EvaluateBlockRequest) -> None:
        """Send the request to every active bot that should process the block."""
        start = time.monotonic()
        logger.debug("send_evaluate_block_request: block=%s", req.block_number)
        self._bot_pool.wait_for_all()

        metrics: List[Dict[str, Any]] = []
        for bot in self._bot_pool.get_current_bot_clients():
            if not bot.should_process_block(req.block_number):
                continue
            bot_config = bot.config
            outcome = self._offer(bot, bot.block_requests, BlockRequest(original=req))
            if outcome is None:
                logger.debug("bot %s is closed - skipping", bot_config.id)
            elif not outcome:
                logger.warning("bot %s block request buffer is full - skipping", bot_config.id)
                metrics.append(_agent_metric(bot_config.id, METRIC_BLOCK_DROP, 1))

        try:
            block_number = decode_block_number(req.block_number)
        except ValueError:
            block_number = 0
        self._msg_client.publish(SUBJECT_SCANNER_BLOCK, {"latest_block_input": block_number})
        self._send_metrics(metrics)
        logger.debug("finished send_evaluate_block_request in %.3fs", time.monotonic() - start)

    def send_evaluate_alert_request(self, req: EvaluateAlertRequest) -> None:
        """Send the alert to the target bot if it should process it."""
        start = time.monotonic()
        alert = req.event.alert
        if alert is None or alert.source is None or alert.source.bot_id is None:
            logger.warning("bad alert request for target %s", req.target_bot_id)
            return
        logger.debug("send_evaluate_alert_request: target=%s alert=%s", req.target_bot_id, alert.hash)

        self._bot_pool.wait_for_all()
        target = next(
            (bot for bot in self._bot_pool.get_current_bot_clients() if bot.config.id == req.target_bot_id),
            None,
        )
        if target is None:
            logger.warning("failed to find subscriber %s", req.target_bot_id)
            return
        if not target.should_process_alert(req.event):
            return
        bot_config = target.config

        metrics: List[Dict[str, Any]] = []
        outcome = self._offer(target, target.combination_requests, CombinationRequest(original=req))
        if outcome is None:
            logger.debug("bot %s is closed - skipping", bot_config.id)
        elif not outcome:
            logger.warning("bot %s alert request buffer is full - skipping", bot_config.id)
            metrics.append(_agent_metric(bot_config.id, METRIC_COMBINER_DROP, 1))

        self._msg_client.publish(SUBJECT_SCANNER_ALERT, {})
        self._send_metrics(metrics)
        logger.debug("finished send_evaluate_alert_request in %.3fs", time.monotonic() - start)