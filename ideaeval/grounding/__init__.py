from __future__ import annotations

from ideaeval.core.config import EvaluatorConfig, SourceConfig
from ideaeval.core.schemas import Submission
from ideaeval.grounding.base import BaseGroundingFetcher
from ideaeval.grounding.http_client import SimpleHttpClient
from ideaeval.grounding.market import CoinGeckoMarketFetcher
from ideaeval.grounding.token_security import SolanaTokenSecurityFetcher

DEFAULT_SOURCES = {
    "market_snapshot": SourceConfig(ttl_hours=1.0),
    "token_security": SourceConfig(cache_ttl_seconds=0, ttl_hours=24.0),
}


def _client(source_cfg: SourceConfig) -> SimpleHttpClient:
    return SimpleHttpClient(
        timeout_seconds=source_cfg.timeout_seconds,
        max_retries=source_cfg.max_retries,
        cache_ttl_seconds=source_cfg.cache_ttl_seconds,
    )


def build_fetchers(config: EvaluatorConfig, submission: Submission) -> list[BaseGroundingFetcher]:
    sources = {**DEFAULT_SOURCES, **config.sources}
    fetchers: list[BaseGroundingFetcher] = []
    for source_name, source_cfg in sources.items():
        if not source_cfg.enabled:
            continue
        if source_name == "market_snapshot":
            fetchers.append(
                CoinGeckoMarketFetcher(
                    base_url=source_cfg.base_url,
                    http=_client(source_cfg),
                    ttl_hours=source_cfg.ttl_hours,
                )
            )
        elif source_name == "token_security" and submission.token_address:
            fetchers.append(
                SolanaTokenSecurityFetcher(
                    submission.token_address,
                    base_url=source_cfg.base_url,
                    http=_client(source_cfg),
                    ttl_hours=source_cfg.ttl_hours,
                )
            )
    return fetchers
