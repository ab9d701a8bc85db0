import asyncio

import pytest
import requests

from ideaeval.core.config import EvaluatorConfig, SourceConfig
from ideaeval.core.pipeline import fetch_grounding
from ideaeval.core.schemas import GroundingEnvelope, GroundingUnavailable, Submission
from ideaeval.grounding import build_fetchers
from ideaeval.grounding.http_client import SimpleHttpClient
from ideaeval.grounding.market import CoinGeckoMarketFetcher, snapshot_from_envelope
from ideaeval.grounding.token_security import SolanaTokenSecurityFetcher, is_solana_address

WSOL = "So11111111111111111111111111111111111111112"


class FakeHttp:
    def __init__(self, responses: dict):
        self.responses = responses
        self.calls: list[tuple] = []

    def get_json(self, url, params=None, headers=None):
        self.calls.append(("GET", url, params))
        return self.responses[url]

    def post_json(self, url, body, headers=None):
        self.calls.append(("POST", url, body))
        return self.responses[url]


class FakeResponse:
    def __init__(self, status_code: int, payload=None):
        self.status_code = status_code
        self._payload = payload

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"status={self.status_code}", response=self)

    def json(self):
        return self._payload


def _coingecko(global_payload, price_payload) -> FakeHttp:
    return FakeHttp(
        {
            "https://cg.test/api/global": global_payload,
            "https://cg.test/api/simple/price": price_payload,
        }
    )


def test_coingecko_snapshot_is_enveloped() -> None:
    http = _coingecko(
        {"data": {"market_cap_percentage": {"btc": 54.3219}, "total_market_cap": {"usd": 2.4e12}}},
        {"solana": {"usd": 142.5}},
    )
    result = CoinGeckoMarketFetcher(base_url="https://cg.test/api/", http=http).fetch()

    assert isinstance(result, GroundingEnvelope)
    assert result.source == "market_snapshot"
    assert result.ttl_hours == 1.0
    assert result.payload["btc_dominance"] == 54.32
    assert result.payload["sol_price_usd"] == 142.5
    assert http.calls[1][2] == {"ids": "solana", "vs_currencies": "usd"}

    snapshot = snapshot_from_envelope(result)
    assert snapshot.btc_dominance == 54.32
    assert snapshot.total_market_cap_usd == 2.4e12
    assert snapshot.is_usable


def test_coingecko_missing_fields_become_unavailable() -> None:
    http = _coingecko({"data": {"market_cap_percentage": {}}}, {"solana": {"usd": 142.5}})
    result = CoinGeckoMarketFetcher(base_url="https://cg.test/api", http=http).fetch()
    assert isinstance(result, GroundingUnavailable)
    assert result.source == "market_snapshot"
    assert result.status == "not_available"
    assert "BTC dominance" in result.reason


def test_snapshot_requires_market_fields() -> None:
    assert snapshot_from_envelope(None) is None
    envelope = GroundingEnvelope({"competitor_count": 4}, "market_snapshot", None, 1.0)
    assert snapshot_from_envelope(envelope) is None


def test_token_security_flags_live_freeze_authority() -> None:
    http = FakeHttp(
        {
            "https://rpc.test": {
                "result": {
                    "value": {
                        "data": {
                            "parsed": {
                                "type": "mint",
                                "info": {
                                    "mintAuthority": None,
                                    "freezeAuthority": "Fr3eZe1111111111111111111111111111111111",
                                    "supply": "1000000000",
                                    "decimals": 9,
                                },
                            }
                        }
                    }
                }
            }
        }
    )
    result = SolanaTokenSecurityFetcher(WSOL, base_url="https://rpc.test", http=http).fetch()

    assert isinstance(result, GroundingEnvelope)
    assert result.payload["mint_authority_active"] is False
    assert result.payload["freeze_authority_active"] is True
    assert result.payload["is_safe"] is False
    assert http.calls[0][2]["method"] == "getAccountInfo"


def test_token_security_rejects_invalid_address() -> None:
    http = FakeHttp({})
    result = SolanaTokenSecurityFetcher("0xdeadbeef", base_url="https://rpc.test", http=http).fetch()
    assert isinstance(result, GroundingUnavailable)
    assert http.calls == []


def test_token_security_reports_rpc_errors() -> None:
    http = FakeHttp({"https://rpc.test": {"error": {"code": -32602, "message": "Invalid param"}}})
    result = SolanaTokenSecurityFetcher(WSOL, base_url="https://rpc.test", http=http).fetch()
    assert isinstance(result, GroundingUnavailable)
    assert "RPC error" in result.reason


def test_solana_address_validation() -> None:
    assert is_solana_address(WSOL)
    assert not is_solana_address("")
    assert not is_solana_address(None)
    assert not is_solana_address("0OIl" * 10)


def test_build_fetchers_respects_token_and_toggles(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    config = EvaluatorConfig()
    assert [f.source for f in build_fetchers(config, Submission(description="x"))] == ["market_snapshot"]

    with_token = build_fetchers(config, Submission(description="x", token_address=WSOL))
    assert [f.source for f in with_token] == ["market_snapshot", "token_security"]

    config.sources["market_snapshot"] = SourceConfig(enabled=False)
    assert build_fetchers(config, Submission(description="x")) == []


def test_fetch_grounding_splits_envelopes_and_unavailable() -> None:
    good = CoinGeckoMarketFetcher(
        base_url="https://cg.test/api",
        http=_coingecko({"data": {"market_cap_percentage": {"btc": 50}}}, {"solana": {"usd": 100}}),
    )
    bad = SolanaTokenSecurityFetcher("nope", http=FakeHttp({}))
    envelopes, unavailable = asyncio.run(fetch_grounding([good, bad], timeout_seconds=5))
    assert [e.source for e in envelopes] == ["market_snapshot"]
    assert [u.source for u in unavailable] == ["token_security"]


def test_http_client_retries_then_caches(tmp_path, monkeypatch) -> None:
    responses = [FakeResponse(503), FakeResponse(200, {"ok": True})]
    calls = []

    def fake_request(method, url, timeout=None, **kwargs):
        calls.append((method, url))
        return responses.pop(0)

    monkeypatch.setattr("ideaeval.grounding.http_client.requests.request", fake_request)
    client = SimpleHttpClient(max_retries=3, backoff_seconds=0, cache_dir=str(tmp_path / "cache"))

    assert client.get_json("https://api.test/x", params={"a": 1}) == {"ok": True}
    assert len(calls) == 2
    assert client.get_json("https://api.test/x", params={"a": 1}) == {"ok": True}
    assert len(calls) == 2


def test_http_client_raises_after_exhausting_retries(tmp_path, monkeypatch) -> None:
    monkeypatch.setattr(
        "ideaeval.grounding.http_client.requests.request",
        lambda method, url, timeout=None, **kwargs: FakeResponse(429),
    )
    client = SimpleHttpClient(max_retries=2, backoff_seconds=0, cache_dir=str(tmp_path), cache_ttl_seconds=0)
    with pytest.raises(requests.HTTPError):
        client.post_json("https://api.test/rpc", {"id": 1})
