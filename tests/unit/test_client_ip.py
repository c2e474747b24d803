"""Unit tests for client address resolution behind reverse proxies."""

import pytest
from fastapi import Request
from pydantic import ValidationError

from easyscrapy.config import Settings, get_settings
from easyscrapy.services.auth_service import get_client_ip


def _request(peer: str | None, forwarded: str | None = None) -> Request:
    headers = [(b"x-forwarded-for", forwarded.encode())] if forwarded else []
    scope = {"type": "http", "method": "GET", "path": "/", "headers": headers}
    if peer:
        scope["client"] = (peer, 52000)
    return Request(scope)


@pytest.fixture
def proxies(monkeypatch):
    monkeypatch.setattr(get_settings(), "trusted_proxy_ips", "10.0.0.0/8, 192.168.1.5")


@pytest.mark.unit
class TestGetClientIp:
    def test_header_ignored_by_default(self) -> None:
        assert get_client_ip(_request("203.0.113.7", "41.188.10.20")) == "203.0.113.7"

    def test_header_ignored_from_untrusted_peer(self, proxies) -> None:
        assert get_client_ip(_request("203.0.113.7", "41.188.10.20")) == "203.0.113.7"

    def test_trusted_proxy_forwards_client(self, proxies) -> None:
        assert get_client_ip(_request("10.1.2.3", "41.188.10.20")) == "41.188.10.20"

    def test_spoofed_prefix_is_skipped(self, proxies) -> None:
        forwarded = "1.2.3.4, 41.188.10.20, 192.168.1.5"
        assert get_client_ip(_request("10.1.2.3", forwarded)) == "41.188.10.20"

    def test_only_proxies_in_chain(self, proxies) -> None:
        assert get_client_ip(_request("10.1.2.3", "10.9.9.9, 192.168.1.5")) == "10.9.9.9"

    def test_no_peer(self) -> None:
        assert get_client_ip(_request(None)) == "unknown"

    def test_invalid_proxy_setting_is_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Settings(debug=True, trusted_proxy_ips="10.0.0.0/8, pas-une-ip")
