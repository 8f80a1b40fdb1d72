from scannode.agents import AgentConfig
from scannode.bot_client import DEFAULT_BUFFER_SIZE, SUBJECT_METRIC_AGENT, BotClient
from scannode.botreq import (
    Alert,
    AlertEvent,
    AlertSource,
    EvaluateAlertRequest,
    EvaluateBlockRequest,
    EvaluateTxRequest,
    TxRequest,
    make_result_channels,
)
from scannode.sender import (
    METRIC_BLOCK_DROP,
    METRIC_TX_DROP,
    SUBJECT_SCANNER_ALERT,
    SUBJECT_SCANNER_BLOCK,
    HealthStatus,
    Sender,
)

SOURCE_BOT = "0x1d646c4045189991fdfd24a66b192a294158b839a6ec121d740474bdacb3abcd"


class Recorder:
    def __init__(self):
        self.calls = []

    def __getattr__(self, name):
        def record(*args, **kwargs):
            self.calls.append((name, args))

        return record


class MessageClient:
    def __init__(self):
        self.published = []

    def publish(self, subject, payload):
        self.published.append((subject, payload))


class Pool:
    def __init__(self, bots):
        self.bots = bots
        self.waits = 0

    def wait_for_all(self):
        self.waits += 1

    def get_current_bot_clients(self):
        return list(self.bots)


def make_bot(bot_id="test-bot", **kwargs):
    return BotClient(
        AgentConfig(id=bot_id, **kwargs), MessageClient(), Recorder(), Recorder(), make_result_channels()
    )


def make_sender(bots):
    msg = MessageClient()
    pool = Pool(bots)
    return Sender(msg, pool), msg, pool


def test_health_reports():
    sender, _, _ = make_sender([make_bot()])
    reports = sender.health()
    assert [r.name for r in reports] == ["agents.total", "agents.lagging"]
    assert reports[0].status is HealthStatus.OK
    assert reports[0].details == "1"
    assert reports[1].status is HealthStatus.INFO
    assert reports[1].details == "0"


def test_health_without_bots_is_failing():
    sender, _, _ = make_sender([])
    reports = sender.health()
    assert reports[0].status is HealthStatus.FAILING
    assert reports[0].details == "0"


def test_health_counts_full_buffers():
    bot = make_bot()
    for _ in range(DEFAULT_BUFFER_SIZE):
        bot.tx_requests.put_nowait(TxRequest(original=EvaluateTxRequest()))
    sender, _, _ = make_sender([bot, make_bot("other")])
    reports = sender.health()
    assert reports[0].details == "2"
    assert reports[1].details == "1"


def test_send_evaluate_tx_request():
    bot = make_bot()
    sender, msg, pool = make_sender([bot])
    req = EvaluateTxRequest(tx_hash="0x1", block_number="0x1")
    sender.send_evaluate_tx_request(req)
    assert pool.waits == 1
    assert bot.tx_requests.get_nowait().original is req
    assert msg.published == []


def test_send_evaluate_tx_request_skips_out_of_range_bot():
    bot = make_bot(start_block=10)
    sender, _, _ = make_sender([bot])
    sender.send_evaluate_tx_request(EvaluateTxRequest(tx_hash="0x1", block_number="0x1"))
    assert bot.tx_requests.empty()


def test_send_evaluate_tx_request_skips_closed_bot():
    bot = make_bot()
    bot.close()
    sender, msg, _ = make_sender([bot])
    sender.send_evaluate_tx_request(EvaluateTxRequest(tx_hash="0x1", block_number="0x1"))
    assert bot.tx_requests.empty()
    assert msg.published == []


def test_send_evaluate_tx_request_full_buffer_publishes_drop():
    bot = make_bot()
    for _ in range(DEFAULT_BUFFER_SIZE):
        bot.tx_requests.put_nowait(TxRequest(original=EvaluateTxRequest()))
    sender, msg, _ = make_sender([bot])
    sender.send_evaluate_tx_request(EvaluateTxRequest(tx_hash="0x1", block_number="0x1"))
    assert len(msg.published) == 1
    subject, metrics = msg.published[0]
    assert subject == SUBJECT_METRIC_AGENT
    assert metrics[0]["name"] == METRIC_TX_DROP
    assert metrics[0]["agent_id"] == "test-bot"


def test_send_evaluate_block_request():
    bot = make_bot()
    sender, msg, pool = make_sender([bot])
    req = EvaluateBlockRequest(block_number="0x1")
    sender.send_evaluate_block_request(req)
    assert pool.waits == 1
    assert bot.block_requests.get_nowait().original is req
    assert msg.published == [(SUBJECT_SCANNER_BLOCK, {"latest_block_input": 1})]


def test_send_evaluate_block_request_bad_number_reports_zero():
    sender, msg, _ = make_sender([])
    sender.send_evaluate_block_request(EvaluateBlockRequest(block_number="xyz"))
    assert msg.published == [(SUBJECT_SCANNER_BLOCK, {"latest_block_input": 0})]


def test_send_evaluate_block_request_full_buffer():
    bot = make_bot()
    for _ in range(DEFAULT_BUFFER_SIZE):
        bot.block_requests.put_nowait(None)
    sender, msg, _ = make_sender([bot])
    sender.send_evaluate_block_request(EvaluateBlockRequest(block_number="0x2"))
    assert msg.published[0] == (SUBJECT_SCANNER_BLOCK, {"latest_block_input": 2})
    assert msg.published[1][0] == SUBJECT_METRIC_AGENT
    assert msg.published[1][1][0]["name"] == METRIC_BLOCK_DROP


def alert_request(target="test-bot", source=AlertSource(bot_id=SOURCE_BOT)):
    return EvaluateAlertRequest(
        target_bot_id=target,
        event=AlertEvent(alert=Alert(hash="123123", created_at="2023-01-01T00:00:00Z", source=source)),
    )


def test_send_evaluate_alert_request():
    bot = make_bot()
    bot.alert_subscriptions = [SOURCE_BOT]
    sender, msg, pool = make_sender([bot])
    req = alert_request()
    sender.send_evaluate_alert_request(req)
    assert pool.waits == 1
    assert bot.combination_requests.get_nowait().original is req
    assert msg.published == [(SUBJECT_SCANNER_ALERT, {})]


def test_send_evaluate_alert_request_bad_request():
    bot = make_bot()
    bot.alert_subscriptions = [SOURCE_BOT]
    sender, msg, pool = make_sender([bot])
    sender.send_evaluate_alert_request(alert_request(source=None))
    assert pool.waits == 0
    assert msg.published == []
    assert bot.combination_requests.empty()


def test_send_evaluate_alert_request_unknown_target():
    bot = make_bot()
    bot.alert_subscriptions = [SOURCE_BOT]
    sender, msg, pool = make_sender([bot])
    sender.send_evaluate_alert_request(alert_request(target="someone-else"))
    assert pool.waits == 1
    assert msg.published == []
    assert bot.combination_requests.empty()


def test_send_evaluate_alert_request_not_a_combiner():
    bot = make_bot()
    sender, msg, _ = make_sender([bot])
    sender.send_evaluate_alert_request(alert_request())
    assert msg.published == []
    assert bot.combination_requests.empty()