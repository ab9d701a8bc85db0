from __future__ import annotations

import re

from ideaeval.grounding.base import BaseGroundingFetcher
from ideaeval.grounding.http_client import SimpleHttpClient

# base58, 32-byte public keys
SOLANA_ADDRESS_RE = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")


def is_solana_address(value: str | None) -> bool:
    return bool(value) and SOLANA_ADDRESS_RE.match(value.strip()) is not None


class SolanaTokenSecurityFetcher(BaseGroundingFetcher):
    """Reads a mint account and reports whether mint/freeze authorities are still live."""

    source = "token_security"

    def __init__(
        self,
        token_address: str,
        base_url: str | None = None,
        http: SimpleHttpClient | None = None,
        ttl_hours: float = 24.0,
    ) -> None:
        self.token_address = token_address.strip()
        self.base_url = base_url or "https://api.mainnet-beta.solana.com"
        self.http = http or SimpleHttpClient(cache_ttl_seconds=0)
        self.ttl_hours = ttl_hours

    def fetch_payload(self) -> dict:
        if not is_solana_address(self.token_address):
            raise ValueError(f"Not a Solana address: {self.token_address!r}")
        response = self.http.post_json(
            self.base_url,
            {
                "jsonrpc": "2.0",
                "id": 1,
                "method": "getAccountInfo",
                "params": [self.token_address, {"encoding": "jsonParsed"}],
            },
        )
        if not isinstance(response, dict):
            raise ValueError("Unexpected RPC response shape")
        if response.get("error"):
            raise ValueError(f"RPC error: {response['error']}")
        value = (response.get("result") or {}).get("value")
        if not isinstance(value, dict):
            raise ValueError("Mint account not found")
        data = value.get("data")
        parsed = data.get("parsed") if isinstance(data, dict) else None
        if not isinstance(parsed, dict) or parsed.get("type") != "mint":
            raise ValueError("Account is not an SPL token mint")
        info = parsed.get("info") or {}
        mint_authority = info.get("mintAuthority")
        freeze_authority = info.get("freezeAuthority")
        return {
            "token_address": self.token_address,
            "mint_authority_active": mint_authority is not None,
            "freeze_authority_active": freeze_authority is not None,
            "supply": info.get("supply"),
            "decimals": info.get("decimals"),
            "is_safe": mint_authority is None and freeze_authority is None,
        }
