from datetime import datetime, timezone

from scannode.agents import AgentConfig
from scannode.botreq import (
    Alert,
    AlertEvent,
    AlertSource,
    BlockRequest,
    BlockResult,
    CombinationAlertResult,
    CombinationRequest,
    EvaluateAlertRequest,
    EvaluateAlertResponse,
    EvaluateBlockRequest,
    EvaluateBlockResponse,
    EvaluateTxRequest,
    EvaluateTxResponse,
    Finding,
    InitializeResponse,
    ResponseStatus,
    TxRequest,
    TxResult,
    make_result_channels,
)


def test_result_channels_carry_tx_results():
    channels = make_result_channels()
    req = EvaluateTxRequest(request_id="r1", tx_hash="0x0", block_number="0x1")
    result = TxResult(AgentConfig(id="bot"), req, EvaluateTxResponse())
    channels.tx.put(result)
    got = channels.tx.get_nowait()
    assert got is result
    assert got.request.tx_hash == "0x0"


def test_result_channels_are_separate():
    channels = make_result_channels()
    block_result = BlockResult(
        AgentConfig(id="bot"), EvaluateBlockRequest(block_number="0x2"), EvaluateBlockResponse()
    )
    channels.block.put(block_result)
    assert channels.tx.empty()
    assert channels.combination_alert.empty()
    assert channels.block.get_nowait().request.block_number == "0x2"


def test_make_result_channels_returns_fresh_queues():
    first = make_result_channels()
    second = make_result_channels()
    first.tx.put(TxResult(AgentConfig(), EvaluateTxRequest(), EvaluateTxResponse()))
    assert second.tx.empty()
    assert first.tx.qsize() == 1


def test_combination_result_through_channel():
    channels = make_result_channels()
    event = AlertEvent(alert=Alert(hash="h", source=AlertSource(bot_id="src")))
    req = EvaluateAlertRequest(request_id="r", target_bot_id="bot", event=event)
    now = datetime.now(timezone.utc)
    result = CombinationAlertResult(
        AgentConfig(id="bot"), req, EvaluateAlertResponse(), {"botRequest": now}
    )
    channels.combination_alert.put(result)
    got = channels.combination_alert.get_nowait()
    assert got.request.event.alert.source.bot_id == "src"
    assert got.timestamps["botRequest"] == now


def test_response_defaults_are_independent():
    a = EvaluateTxResponse()
    b = EvaluateTxResponse()
    a.metadata["imageHash"] = "x"
    a.findings.append(Finding(alert_id="A"))
    assert b.metadata == {}
    assert b.findings == []
    assert a.status is ResponseStatus.UNKNOWN


def test_request_wrappers_hold_originals():
    tx = EvaluateTxRequest(request_id="t")
    block = EvaluateBlockRequest(request_id="b")
    alert = EvaluateAlertRequest(request_id="a")
    assert TxRequest(tx).original is tx
    assert BlockRequest(block).original is block
    assert CombinationRequest(alert).original is alert


def test_initialize_response_without_alert_config():
    resp = InitializeResponse(status=ResponseStatus.SUCCESS)
    assert resp.subscriptions is None
    assert resp.status == ResponseStatus.SUCCESS
    assert ResponseStatus.ERROR != ResponseStatus.SUCCESS