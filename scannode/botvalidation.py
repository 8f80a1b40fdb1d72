"""Validation of bot responses and the rules for which work a bot takes."""

from __future__ import annotations

import re
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Tuple

from .agents import AgentConfig
from .botreq import EvaluateAlertResponse, Finding, InitializeResponse


class ValidationError(ValueError):
    """A bot response did not pass validation."""


@dataclass(frozen=True)
class Subscriber:
    bot_id: str = ""
    bot_owner: str = ""
    bot_image: str = ""


@dataclass(frozen=True)
class CombinerBotSubscription:
    """A subscriber bot's interest in the alerts of the bot ``bot_id``."""

    bot_id: str
    subscriber: Subscriber


_KECCAK256 = re.compile(r"0x[a-f0-9]{64}")
_BOT_ID = re.compile(r"0x[a-fA-F0-9]{64}")
_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")
_RFC3339 = re.compile(
    r"(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})(\.\d+)?(Z|[+-]\d{2}:\d{2})"
)
_UINT64 = 1 << 64
_UINT32 = 1 << 32


def make_combiner_bot_subscriptions(
    alert_subs: Optional[Iterable[str]], bot_config: AgentConfig
) -> List[CombinerBotSubscription]:
    """Pair each subscribed bot id with the subscribing bot."""
    subscriber = Subscriber(
        bot_id=bot_config.id, bot_owner=bot_config.owner, bot_image=bot_config.image
    )
    return [CombinerBotSubscription(bot_id=sub, subscriber=subscriber) for sub in alert_subs or ()]


def validate_initialize_response(response: Optional[InitializeResponse]) -> None:
    """Raise ValidationError unless the response is present and its subscriptions name valid bots."""
    if response is None:
        raise ValidationError("initialize response can not be nil")
    for bot_id in response.subscriptions or ():
        if not _BOT_ID.fullmatch(bot_id):
            raise ValidationError(f"invalid bot id: {bot_id}")


def validate_finding(finding: Optional[Finding]) -> None:
    """Raise ValidationError for a missing finding or malformed alert hashes and addresses."""
    if finding is None:
        raise ValidationError("nil finding")
    for alert in finding.related_alerts:
        if not check_valid_keccak256(alert):
            raise ValidationError(f"bad related alert string: {alert}")
    for address in finding.addresses:
        if not is_hex_address(address):
            raise ValidationError(f"bad address string: {address}")


def validate_evaluate_alert_response(resp: Optional[EvaluateAlertResponse]) -> None:
    """Raise ValidationError for a missing response or any invalid finding."""
    if resp is None:
        raise ValidationError("nil response")
    for finding in resp.findings:
        validate_finding(finding)


def check_valid_keccak256(value: str) -> bool:
    """Tell if ``value`` is a 0x-prefixed lower-case 32-byte hex hash."""
    return _KECCAK256.fullmatch(value) is not None


def is_hex_address(address: str) -> bool:
    """Tell if ``address`` is 20 bytes of hex, with or without a 0x prefix."""
    if address[:2] in ("0x", "0X"):
        address = address[2:]
    return len(address) == 40 and all(c in _HEX_DIGITS for c in address)


def decode_block_number(block_number_hex: str) -> int:
    """Decode a 0x-prefixed hex quantity of at most 64 bits; raise ValueError otherwise."""
    if not block_number_hex:
        raise ValueError("empty hex string")
    if block_number_hex[:2] not in ("0x", "0X"):
        raise ValueError("hex string without 0x prefix")
    digits = block_number_hex[2:]
    if not digits:
        raise ValueError('hex string "0x"')
    if len(digits) > 1 and digits[0] == "0":
        raise ValueError("hex number with leading zero digits")
    if len(digits) > 16:
        raise ValueError("hex number > 64 bits")
    if not all(c in _HEX_DIGITS for c in digits):
        raise ValueError("invalid hex string")
    return int(digits, 16)


def should_process_block(bot_config: AgentConfig, block_number_hex: str) -> bool:
    """Tell if the bot takes the block: within its start/stop range and on its shard.

    A block number that cannot be decoded counts as block zero.
    """
    try:
        block_number = decode_block_number(block_number_hex)
    except ValueError:
        block_number = 0
    if bot_config.start_block is not None and block_number < bot_config.start_block:
        return False
    if bot_config.stop_block is not None and block_number > bot_config.stop_block:
        return False
    if bot_config.is_sharded():
        shard = bot_config.shard_config
        return block_number % shard.shards == shard.shard_id
    return True


def _parse_unix_seconds(created_at: str) -> int:
    match = _RFC3339.fullmatch(created_at)
    if match is None:
        raise ValueError(f"cannot parse {created_at!r} as an RFC 3339 time")
    year, month, day, hour, minute, second = (int(g) for g in match.groups()[:6])
    zone = match.group(8)
    if zone == "Z":
        tz = timezone.utc
    else:
        sign = 1 if zone[0] == "+" else -1
        tz = timezone(sign * timedelta(hours=int(zone[1:3]), minutes=int(zone[4:6])))
    try:
        moment = datetime(year, month, day, hour, minute, second, tzinfo=tz)
    except ValueError as exc:
        raise ValueError(f"cannot parse {created_at!r}: {exc}") from exc
    return int(moment.timestamp())


def is_on_alert_shard(bot_config: AgentConfig, created_at: str) -> bool:
    """Tell if an alert created at ``created_at`` belongs to this bot's shard.

    Raises ValueError when ``created_at`` is not an RFC 3339 time.
    """
    unix = _parse_unix_seconds(created_at)
    if not bot_config.is_sharded():
        return True
    shard = bot_config.shard_config
    return (unix % _UINT64) % shard.shards == shard.shard_id


def calculate_response_time(start_time: float) -> Tuple[str, int, float]:
    """From a ``time.monotonic()`` start, return the UTC RFC 3339 timestamp, latency in ms and duration in seconds."""
    duration = time.monotonic() - start_time
    now = datetime.now(timezone.utc)
    latency_ms = int(duration * 1000) % _UINT32
    return now.strftime("%Y-%m-%dT%H:%M:%SZ"), latency_ms, duration