import logging

import pytest

from scannode.health import HealthServerError, default_health_server_err_handler


def test_server_closed_is_logged(caplog):
    with caplog.at_level(logging.WARNING, logger="scannode.health"):
        result = default_health_server_err_handler(OSError("http: Server Closed"))
    assert result is None
    assert any("health server was shut down" in r.getMessage() for r in caplog.records)


def test_other_failure_raises():
    cause = OSError("address already in use")
    with pytest.raises(HealthServerError) as info:
        default_health_server_err_handler(cause)
    assert info.value.__cause__ is cause