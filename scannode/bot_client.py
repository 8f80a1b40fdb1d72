"""Clients that feed requests to detection bots and collect their results."""

from __future__ import annotations

import logging
import queue
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional, Protocol

from .agents import AgentConfig
from .botreq import (
    BlockRequest,
    BlockResult,
    CombinationAlertResult,
    CombinationRequest,
    EvaluateAlertResponse,
    EvaluateBlockResponse,
    EvaluateTxResponse,
    InitializeResponse,
    ResponseStatus,
    ResultChannels,
    TxRequest,
    TxResult,
)
from .botvalidation import (
    CombinerBotSubscription,
    ValidationError,
    calculate_response_time,
    is_on_alert_shard,
    make_combiner_bot_subscriptions,
    should_process_block,
    validate_evaluate_alert_response,
    validate_initialize_response,
)
from .constants import DOCKER_JSON_RPC_PROXY_CONTAINER_NAME
from .errorcounter import ErrorCounter

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_SIZE = 2000
REQUEST_TIMEOUT = 5 * 60.0
MAX_FINDINGS = 50
DEFAULT_INITIALIZE_TIMEOUT = 5 * 60.0
DEFAULT_HEALTH_CHECK_INTERVAL = 30.0

METHOD_EVALUATE_TX = "EvaluateTx"
METHOD_EVALUATE_BLOCK = "EvaluateBlock"
METHOD_EVALUATE_ALERT = "EvaluateAlert"

SUBJECT_AGENTS_ALERT_SUBSCRIBE = "agents.alert.subscribe"
SUBJECT_AGENTS_ALERT_UNSUBSCRIBE = "agents.alert.unsubscribe"
SUBJECT_METRIC_AGENT = "metric.agent"

METRIC_FINDINGS_DROPPED = "agent.findings.dropped"

_POLL_INTERVAL = 0.05


class BotCallError(Exception):
    """A call to a bot failed; ``unimplemented`` marks a method the bot does not provide."""

    def __init__(self, message: str, *, unimplemented: bool = False):
        super().__init__(message)
        self.unimplemented = unimplemented


class _GrpcClient(Protocol):
    def initialize(self, *, agent_id: str, proxy_host: str, timeout: float) -> Optional[InitializeResponse]: ...

    def invoke(self, method: str, request: Any, *, timeout: float) -> Any: ...

    def do_health_check(self) -> None: ...

    def close(self) -> None: ...


class _BotDialer(Protocol):
    def dial_bot(self, bot_config: AgentConfig) -> _GrpcClient: ...


class _MessageClient(Protocol):
    def publish(self, subject: str, payload: Any) -> None: ...


def _is_critical_err(err: BaseException) -> bool:
    return False


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _is_unimplemented(err: BaseException) -> bool:
    return isinstance(err, BotCallError) and err.unimplemented


class BotClient:
    """A detection bot that is being talked to and managed."""

    def __init__(
        self,
        bot_config: AgentConfig,
        msg_client: _MessageClient,
        lifecycle_metrics: Any,
        dialer: _BotDialer,
        result_channels: ResultChannels,
    ):
        self._lock = threading.RLock()
        self._config = bot_config
        self._subscriptions: List[str] = []
        self.tx_requests: "queue.Queue[TxRequest]" = queue.Queue(DEFAULT_BUFFER_SIZE)
        self.block_requests: "queue.Queue[BlockRequest]" = queue.Queue(DEFAULT_BUFFER_SIZE)
        self.combination_requests: "queue.Queue[CombinationRequest]" = queue.Queue(DEFAULT_BUFFER_SIZE)
        self._results = result_channels
        self._err_counter = ErrorCounter(3, _is_critical_err)
        self._msg_client = msg_client
        self._metrics = lifecycle_metrics
        self._dialer = dialer
        self._client: Optional[_GrpcClient] = None
        self._initialized = threading.Event()
        self._closed = threading.Event()
        self._close_lock = threading.Lock()
        self._close_done = False

    # state

    @property
    def config(self) -> AgentConfig:
        with self._lock:
            return self._config

    @config.setter
    def config(self, bot_config: AgentConfig) -> None:
        with self._lock:
            self._config = bot_config

    @property
    def alert_subscriptions(self) -> List[str]:
        with self._lock:
            return list(self._subscriptions)

    @alert_subscriptions.setter
    def alert_subscriptions(self, subscriptions: List[str]) -> None:
        with self._lock:
            self._subscriptions = list(subscriptions)

    @property
    def _grpc_client(self) -> Optional[_GrpcClient]:
        with self._lock:
            return self._client

    def _set_grpc_client(self, client: _GrpcClient) -> None:
        with self._lock:
            if self._client is not None:
                self._client.close()
            self._client = client

    @property
    def is_initialized(self) -> bool:
        return self._initialized.is_set()

    @property
    def is_closed(self) -> bool:
        return self._closed.is_set()

    def wait_initialized(self, timeout: Optional[float] = None) -> bool:
        """Block until the bot is initialized; return False on timeout."""
        return self._initialized.wait(timeout)

    def _is_combiner_bot(self) -> bool:
        return bool(self.alert_subscriptions)

    def combiner_bot_subscriptions(self) -> List[CombinerBotSubscription]:
        return make_combiner_bot_subscriptions(self.alert_subscriptions, self.config)

    def tx_buffer_is_full(self) -> bool:
        return self.tx_requests.full()

    def log_status(self) -> None:
        logger.debug(
            "bot status: bot=%s blockBuffer=%d txBuffer=%d initialized=%s closed=%s",
            self.config.id,
            self.block_requests.qsize(),
            self.tx_requests.qsize(),
            self.is_initialized,
            self.is_closed,
        )

    # lifecycle

    def close(self) -> None:
        """Stop the bot; only the first call has any effect."""
        with self._close_lock:
            if self._close_done:
                return
            self._close_done = True
        self._closed.set()
        client = self._grpc_client
        if client is not None:
            client.close()
        bot_config = self.config
        logger.info("detached: bot=%s image=%s", bot_config.id, bot_config.image)
        self._metrics.client_close(bot_config)
        if self._is_combiner_bot():
            subs = self.combiner_bot_subscriptions()
            self._msg_client.publish(SUBJECT_AGENTS_ALERT_UNSUBSCRIBE, subs)
            self._metrics.action_unsubscribe(subs)

    def initialize(self) -> None:
        """Dial the bot, ask it to initialize and record its subscriptions."""
        bot_config = self.config
        self._metrics.client_dial(bot_config)

        try:
            client = self._dialer.dial_bot(bot_config)
        except Exception as err:  # noqa: BLE001 - any dial failure is logged and ends the attempt
            logger.info("failed to dial bot %s: %s", bot_config.id, err)
            return
        self._set_grpc_client(client)
        self._metrics.status_attached(bot_config)
        logger.info("attached to bot %s", bot_config.id)

        try:
            response = client.initialize(
                agent_id=bot_config.id,
                proxy_host=DOCKER_JSON_RPC_PROXY_CONTAINER_NAME,
                timeout=DEFAULT_INITIALIZE_TIMEOUT,
            )
        except Exception as err:  # noqa: BLE001
            if _is_unimplemented(err):
                logger.info("initialize() not implemented in bot %s - safe to ignore", bot_config.id)
                self._init_success(bot_config)
                return
            logger.warning("bot %s initialization failed: %s", bot_config.id, err)
            self._metrics.failure_initialize(err, bot_config)
            self.close()
            return

        if response is not None and response.status == ResponseStatus.ERROR:
            err = BotCallError("; ".join(response.errors) or "initialize returned an error response")
            logger.warning("bot %s initialization returned an error response: %s", bot_config.id, err)
            self._metrics.failure_initialize_response(err, bot_config)
            self.close()
            return

        try:
            validate_initialize_response(response)
        except ValidationError as err:
            logger.warning("bot %s initialization validation failed: %s", bot_config.id, err)
            self._metrics.failure_initialize_validate(err, bot_config)
            return

        if response.subscriptions is not None:
            self.alert_subscriptions = response.subscriptions
            subs = self.combiner_bot_subscriptions()
            self._msg_client.publish(SUBJECT_AGENTS_ALERT_SUBSCRIBE, subs)
            self._metrics.action_subscribe(subs)

        self._init_success(bot_config)
        logger.info("bot %s initialization succeeded", bot_config.id)

    def _init_success(self, bot_config: AgentConfig) -> None:
        self._initialized.set()
        self._metrics.status_initialized(bot_config)

    # processing

    def start_processing(self) -> None:
        """Start the threads that handle incoming requests and health checks."""
        workers = [
            ("tx", lambda: self._process_requests(self.tx_requests, self._process_transaction)),
            ("block", lambda: self._process_requests(self.block_requests, self._process_block)),
            (
                "combination",
                lambda: self._process_requests(self.combination_requests, self._process_combination_alert),
            ),
            ("health", self._process_health_checks),
        ]
        for name, target in workers:
            threading.Thread(target=target, name=f"bot-{self.config.id}-{name}", daemon=True).start()

    def _wait_until_ready(self) -> bool:
        while not self._initialized.wait(_POLL_INTERVAL):
            if self._closed.is_set():
                return False
        return True

    def _process_requests(self, requests: "queue.Queue[Any]", handler: Callable[[Any], bool]) -> None:
        if not self._wait_until_ready():
            return
        while not self._closed.is_set():
            try:
                request = requests.get(timeout=_POLL_INTERVAL)
            except queue.Empty:
                continue
            if handler(request):
                return
        logger.info("bot %s is closed - stopping request processing", self.config.id)

    def _process_health_checks(self) -> None:
        if not self._wait_until_ready():
            return
        if self.do_health_check():
            return
        while not self._closed.wait(DEFAULT_HEALTH_CHECK_INTERVAL):
            if self.do_health_check():
                return

    def do_health_check(self) -> bool:
        """Run one health check; return True when the bot is closed and checks should stop."""
        bot_config = self.config
        client = self._grpc_client
        if self.is_closed:
            return True
        self._metrics.health_check_attempt(bot_config)
        try:
            client.do_health_check()
        except Exception as err:  # noqa: BLE001
            self._metrics.health_check_error(err, bot_config)
        else:
            self._metrics.health_check_success(bot_config)
        return False

    def _invoke(self, method: str, request: Any, response_factory: Callable[[], Any]):
        client = self._grpc_client
        request_time = _utcnow()
        try:
            resp = client.invoke(method, request, timeout=REQUEST_TIMEOUT)
            err: Optional[BaseException] = None
        except Exception as exc:  # noqa: BLE001
            resp, err = None, exc
        response_time = _utcnow()
        if resp is None:
            resp = response_factory()
        return resp, err, request_time, response_time

    def _handle_invoke_error(self, kind: str, err: BaseException, bot_config: AgentConfig) -> bool:
        if _is_unimplemented(err):
            return False
        logger.error("error invoking bot %s: %s", bot_config.id, err)
        self._metrics.bot_error(kind, err, bot_config)
        return self._check_too_many_errs(err, bot_config)

    def _check_too_many_errs(self, err: BaseException, bot_config: AgentConfig) -> bool:
        if self._err_counter.too_many_errs(err):
            logger.error("too many errors - shutting down bot %s", bot_config.id)
            self.close()
            self._metrics.failure_too_many_errs(err, bot_config)
            return True
        return False

    def _finish_response(self, resp: Any, start: float, bot_config: AgentConfig) -> None:
        if len(resp.findings) > MAX_FINDINGS:
            dropped = len(resp.findings) - MAX_FINDINGS
            self._msg_client.publish(
                SUBJECT_METRIC_AGENT,
                [
                    {
                        "agent_id": bot_config.id,
                        "name": METRIC_FINDINGS_DROPPED,
                        "value": float(dropped),
                    }
                ],
            )
            resp.findings = resp.findings[:MAX_FINDINGS]
        resp.timestamp, resp.latency_ms, duration = calculate_response_time(start)
        logger.debug("request to bot %s successful in %.3fs", bot_config.id, duration)
        if resp.metadata is None:
            resp.metadata = {}
        resp.metadata["imageHash"] = bot_config.image_hash()

    @staticmethod
    def _tracking(source: dict, request_time: datetime, response_time: datetime) -> dict:
        timestamps = dict(source or {})
        timestamps["bot_request"] = request_time
        timestamps["bot_response"] = response_time
        return timestamps

    def _process_transaction(self, request: TxRequest) -> bool:
        bot_config = self.config
        if self.is_closed:
            return True
        start = time.monotonic()
        resp, err, request_time, response_time = self._invoke(
            METHOD_EVALUATE_TX, request.original, EvaluateTxResponse
        )
        if err is not None:
            return self._handle_invoke_error("tx.invoke", err, bot_config)
        self._finish_response(resp, start, bot_config)
        self._results.tx.put(
            TxResult(
                agent_config=bot_config,
                request=request.original,
                response=resp,
                timestamps=self._tracking(request.original.timestamps, request_time, response_time),
            )
        )
        return False

    def _process_block(self, request: BlockRequest) -> bool:
        bot_config = self.config
        if self.is_closed:
            return True
        start = time.monotonic()
        resp, err, request_time, response_time = self._invoke(
            METHOD_EVALUATE_BLOCK, request.original, EvaluateBlockResponse
        )
        if err is not None:
            return self._handle_invoke_error("block.invoke", err, bot_config)
        self._finish_response(resp, start, bot_config)
        self._results.block.put(
            BlockResult(
                agent_config=bot_config,
                request=request.original,
                response=resp,
                timestamps=self._tracking(request.original.timestamps, request_time, response_time),
            )
        )
        return False

    def _process_combination_alert(self, request: CombinationRequest) -> bool:
        bot_config = self.config
        if self.is_closed:
            return True
        start = time.monotonic()
        resp, err, request_time, response_time = self._invoke(
            METHOD_EVALUATE_ALERT, request.original, EvaluateAlertResponse
        )
        if err is not None:
            if not _is_unimplemented(err):
                logger.error("error invoking bot %s: %s", bot_config.id, err)
                self._metrics.bot_error("combiner.invoke", err, bot_config)
            if self._check_too_many_errs(err, bot_config):
                return True

        try:
            validate_evaluate_alert_response(resp)
        except ValidationError as verr:
            logger.error(
                "evaluate combination response validation failed for request %s: %s",
                request.original.request_id,
                verr,
            )
            self._metrics.bot_error("validate.evaluate.alert.response", verr, bot_config)
            return False

        self._finish_response(resp, start, bot_config)
        self._results.combination_alert.put(
            CombinationAlertResult(
                agent_config=bot_config,
                request=request.original,
                response=resp,
                timestamps=self._tracking(request.original.event.timestamps, request_time, response_time),
            )
        )
        return False

    # routing rules

    def should_process_block(self, block_number_hex: str) -> bool:
        return should_process_block(self.config, block_number_hex)

    def should_process_alert(self, event: Any) -> bool:
        if not self._is_combiner_bot():
            return False
        bot_config = self.config
        alert = event.alert
        if alert is None:
            return False
        try:
            return is_on_alert_shard(bot_config, alert.created_at)
        except ValueError:
            logger.warning(
                "failed to parse created at for sharding calculation: alertHash=%s createdAt=%s botId=%s",
                alert.hash,
                alert.created_at,
                bot_config.id,
            )
            return False


class BotClientFactory:
    """Creates bot clients that share the same dependencies."""

    def __init__(
        self,
        result_channels: ResultChannels,
        msg_client: _MessageClient,
        lifecycle_metrics: Any,
        dialer: _BotDialer,
    ):
        self._result_channels = result_channels
        self._msg_client = msg_client
        self._metrics = lifecycle_metrics
        self._dialer = dialer

    def new_bot_client(self, bot_config: AgentConfig) -> BotClient:
        return BotClient(bot_config, self._msg_client, self._metrics, self._dialer, self._result_channels)