from __future__ import annotations

from ideaeval.core.schemas import GroundingEnvelope, MarketSnapshot
from ideaeval.core.utils import from_iso, to_number, utc_now
from ideaeval.grounding.base import BaseGroundingFetcher
from ideaeval.grounding.http_client import SimpleHttpClient


class CoinGeckoMarketFetcher(BaseGroundingFetcher):
    source = "market_snapshot"

    def __init__(
        self,
        base_url: str | None = None,
        http: SimpleHttpClient | None = None,
        ttl_hours: float = 1.0,
    ) -> None:
        self.base_url = (base_url or "https://api.coingecko.com/api/v3").rstrip("/")
        self.http = http or SimpleHttpClient()
        self.ttl_hours = ttl_hours

    def fetch_payload(self) -> dict:
        overview = self.http.get_json(f"{self.base_url}/global")
        prices = self.http.get_json(
            f"{self.base_url}/simple/price", params={"ids": "solana", "vs_currencies": "usd"}
        )
        data = overview.get("data") if isinstance(overview, dict) else None
        if not isinstance(data, dict):
            raise ValueError("CoinGecko /global returned no data block")
        btc_dominance = to_number((data.get("market_cap_percentage") or {}).get("btc"))
        sol_price = to_number((prices.get("solana") or {}).get("usd")) if isinstance(prices, dict) else None
        if btc_dominance is None or sol_price is None:
            raise ValueError("CoinGecko response is missing BTC dominance or SOL price")
        return {
            "btc_dominance": round(btc_dominance, 2),
            "sol_price_usd": sol_price,
            "total_market_cap_usd": to_number((data.get("total_market_cap") or {}).get("usd")),
            "timestamp": utc_now().isoformat(),
        }


def snapshot_from_envelope(envelope: GroundingEnvelope | None) -> MarketSnapshot | None:
    if envelope is None or not isinstance(envelope.payload, dict):
        return None
    payload = envelope.payload
    btc_dominance = to_number(payload.get("btc_dominance"))
    sol_price = to_number(payload.get("sol_price_usd"))
    if btc_dominance is None or sol_price is None:
        return None
    return MarketSnapshot(
        btc_dominance=btc_dominance,
        sol_price_usd=sol_price,
        total_market_cap_usd=to_number(payload.get("total_market_cap_usd")),
        source="coingecko",
        timestamp=from_iso(payload.get("timestamp")) or envelope.fetched_at,
    )
