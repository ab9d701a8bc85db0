from __future__ import annotations

import re
from dataclasses import dataclass, field


DOMAIN_KEYWORDS: dict[str, list[str]] = {
    "crypto_defi": [
        "blockchain", "defi", "smart contract", "liquidity", "liquidity pool", "dex",
        "staking", "yield", "on-chain", "onchain", "tvl", "protocol", "amm",
        "governance token", "bridge", "wallet", "cross-chain", "lending", "collateral",
        "liquidation", "oracle", "tokenized", "stablecoin", "vault",
    ],
    "memecoin": [
        "meme", "memecoin", "meme token", "degen", "pump", "community token",
        "fair launch", "bonding curve", "ticker", "viral token", "to the moon",
        "shitcoin", "holder", "raid", "airdrop", "rug",
    ],
    "ai_ml": [
        "ai", "machine learning", "ml", "llm", "model", "training", "retraining",
        "inference", "fine-tune", "finetune", "embedding", "rag", "retrieval",
        "transformer", "dataset", "gpu", "generative", "multimodal", "copilot",
    ],
    "saas": [
        "saas", "subscription", "mrr", "arr", "churn", "b2b", "enterprise",
        "seat-based", "per-seat", "per-user", "per user", "crm", "onboarding",
        "workflow software", "annual contract", "multi-year contract", "cac",
        "payback", "seat growth", "account expansion", "compliance automation",
    ],
    "consumer": [
        "consumer", "social", "creator", "influencer", "marketplace", "mobile app",
        "mobile", "viral loop", "retention", "nft", "gaming", "game", "community",
        "collector", "skin", "streak", "gamification", "sharing", "referral", "habit",
    ],
    "hardware": [
        "hardware", "device", "sensor", "chip", "manufacturing", "factory",
        "firmware", "iot", "pcb", "bom", "supply chain", "robotics",
        "controller board", "industrial", "over-the-air",
    ],
}

HINT_TO_DOMAIN: dict[str, str] = {
    "defi": "crypto_defi",
    "crypto_defi": "crypto_defi",
    "memecoin": "memecoin",
    "ai": "ai_ml",
    "ai_ml": "ai_ml",
    "nft": "consumer",
    "gaming": "consumer",
    "consumer": "consumer",
    "saas": "saas",
    "hardware": "hardware",
}

RUBRIC_PROFILES: dict[str, str] = {
    "crypto_defi": "defi",
    "memecoin": "memecoin",
    "ai_ml": "ai",
    "saas": "saas",
    "consumer": "consumer",
}

MIN_SCORE = 1.5
MEME_OVER_DEFI_BONUS = 0.75


@dataclass
class DomainClassification:
    domain: str
    confidence: str
    matched_signals: list[str] = field(default_factory=list)
    used_hint: bool = False


def map_hint_to_domain(hint: str | None) -> str:
    normalized = (hint or "").strip().lower()
    return HINT_TO_DOMAIN.get(normalized, "other")


def map_domain_to_rubric_profile(domain: str) -> str:
    return RUBRIC_PROFILES.get(domain, "generic")


def _has_keyword(text: str, keyword: str) -> bool:
    if " " in keyword:
        return keyword in text
    pattern = rf"\b{re.escape(keyword)}s?\b"
    return re.search(pattern, text) is not None


def _keyword_table(extra_keywords: dict[str, list[str]] | None) -> dict[str, list[str]]:
    table = {domain: list(words) for domain, words in DOMAIN_KEYWORDS.items()}
    for domain, words in (extra_keywords or {}).items():
        if domain not in table:
            continue
        for word in words:
            lowered = word.lower()
            if lowered not in table[domain]:
                table[domain].append(lowered)
    return table


def score_domains(
    text: str, extra_keywords: dict[str, list[str]] | None = None
) -> tuple[dict[str, float], dict[str, list[str]]]:
    lowered = (text or "").lower()
    scores: dict[str, float] = {}
    matched: dict[str, list[str]] = {}
    for domain, keywords in _keyword_table(extra_keywords).items():
        hits = [kw for kw in keywords if _has_keyword(lowered, kw)]
        scores[domain] = float(len(hits))
        matched[domain] = hits
    # Meme signals on top of DeFi vocabulary describe a memecoin, not a protocol.
    if scores["memecoin"] >= 2 and scores["crypto_defi"] > 0:
        scores["memecoin"] += MEME_OVER_DEFI_BONUS
    return scores, matched


def classify_domain(
    text: str,
    hint: str | None = None,
    extra_keywords: dict[str, list[str]] | None = None,
) -> DomainClassification:
    """Map submission text and an optional project-type hint to a domain tag.

    A hint naming a known project type is authoritative. Otherwise the text is
    scored against the keyword sets and the best domain wins if it clears
    MIN_SCORE; anything weaker falls back to "other".
    """
    scores, matched = score_domains(text, extra_keywords)

    hinted = map_hint_to_domain(hint)
    if hinted != "other":
        return DomainClassification(
            domain=hinted,
            confidence="high",
            matched_signals=[f"hint:{hint.strip().lower()}"] + matched[hinted][:7],
            used_hint=True,
        )

    ranked = sorted(scores.items(), key=lambda item: item[1], reverse=True)
    top_domain, top_score = ranked[0]
    second_score = ranked[1][1] if len(ranked) > 1 else 0.0
    if top_score < MIN_SCORE:
        return DomainClassification(domain="other", confidence="low")

    margin = top_score - second_score
    confidence = "low"
    if top_score >= 5 and margin >= 1.5:
        confidence = "high"
    elif top_score >= 3 and margin >= 0.75:
        confidence = "medium"

    return DomainClassification(
        domain=top_domain,
        confidence=confidence,
        matched_signals=matched[top_domain][:8],
        used_hint=False,
    )


def classify(text: str, hint: str | None = None) -> str:
    return classify_domain(text, hint).domain
