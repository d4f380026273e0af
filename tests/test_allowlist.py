import pytest
from structlog.testing import capture_logs

from discord_gateway.allowlist import IPAllowlistGuard
from discord_gateway.errors import ConfigurationError, UnauthorizedOrigin


def test_exact_addresses_and_networks_are_allowed():
    guard = IPAllowlistGuard(["127.0.0.1", "10.1.0.0/16", "::1"])

    assert guard.check("127.0.0.1") is True
    assert guard.check("10.1.200.7") is True
    assert guard.check("::1") is True
    assert guard.check("10.2.0.1") is False


def test_ipv4_mapped_addresses_match_ipv4_entries():
    guard = IPAllowlistGuard(["192.168.1.10"])

    assert guard.check("::ffff:192.168.1.10") is True


def test_missing_or_garbage_addresses_are_denied():
    guard = IPAllowlistGuard(["127.0.0.1"])

    assert guard.check(None) is False
    assert guard.check("not-an-ip") is False


def test_wildcard_allows_everyone():
    guard = IPAllowlistGuard(["*"])

    assert guard.allows_any is True
    assert guard.check("203.0.113.9") is True


def test_invalid_entry_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        IPAllowlistGuard(["300.1.1.1"])


def test_enforce_raises_and_logs_security_event():
    guard = IPAllowlistGuard(["127.0.0.1"])

    with capture_logs() as logs:
        with pytest.raises(UnauthorizedOrigin) as err:
            guard.enforce("203.0.113.9", path="/api/server/setup")

    assert err.value.status_code == 403
    assert any(
        entry.get("reason") == "unauthorized_origin" and entry.get("identity") == "203.0.113.9"
        for entry in logs
    )
