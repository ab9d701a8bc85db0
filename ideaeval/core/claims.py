from __future__ import annotations

import logging
import re
from typing import Any, Iterable

from ideaeval.core.schemas import (
    ClaimContradiction,
    ClaimVerificationResult,
    GroundingEnvelope,
    NumericalClaim,
)
from ideaeval.core.utils import to_number

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE = 0.25

_MULTIPLIERS = {
    "trillion": 1e12,
    "t": 1e12,
    "billion": 1e9,
    "bn": 1e9,
    "b": 1e9,
    "million": 1e6,
    "mm": 1e6,
    "m": 1e6,
    "thousand": 1e3,
    "k": 1e3,
}

_NUMBER = r"(\d{1,3}(?:,\d{3})+(?:\.\d+)?|\d+(?:\.\d+)?)"
_SUFFIX = r"(trillion|billion|million|thousand|bn|mm|[tbmk])?"

CURRENCY_RE = re.compile(rf"\$\s?{_NUMBER}\s*{_SUFFIX}\b", re.IGNORECASE)
PERCENT_RE = re.compile(rf"{_NUMBER}\s?(%|percent\b)", re.IGNORECASE)
COUNT_RE = re.compile(
    rf"(?<![\$\d.,]){_NUMBER}\s*(million|thousand|[mk])?\+?\s+"
    r"(competitors|competing protocols|protocols|projects|rivals|"
    r"daily active users|monthly active users|active users|users|holders|customers|wallets)\b",
    re.IGNORECASE,
)

_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")

GROUNDING_KEYS: dict[str, str] = {
    "market_size": "market_size_usd",
    "growth_rate": "growth_rate_pct",
    "tvl": "tvl_usd",
    "revenue": "revenue_usd",
    "funding": "funding_usd",
    "user_count": "user_count",
    "competitor_count": "competitor_count",
    "market_cap": "market_cap_usd",
}

_CURRENCY_METRICS: list[tuple[str, tuple[str, ...]]] = [
    ("unknown", ("budget", "cost", "spend", "price", "salary")),
    ("tvl", ("tvl", "total value locked")),
    ("market_cap", ("market cap", "market capitalization", "valuation")),
    ("revenue", ("revenue", "arr", "mrr", "sales")),
    ("funding", ("raised", "funding", "seed round", "series a", "series b")),
    ("market_size", ("market", "tam", "addressable", "industry", "sector")),
]

_PERCENT_METRICS: list[tuple[str, tuple[str, ...]]] = [
    ("growth_rate", ("grow", "growth", "cagr", "annually", "per year", "yoy", "year-over-year")),
]

_COUNT_METRICS = {
    "competitors": "competitor_count",
    "competing protocols": "competitor_count",
    "protocols": "competitor_count",
    "projects": "competitor_count",
    "rivals": "competitor_count",
}


def _to_value(number: str, suffix: str | None) -> float:
    value = float(number.replace(",", ""))
    if suffix:
        value *= _MULTIPLIERS.get(suffix.lower(), 1.0)
    return value


def _context(sentence: str, start: int, end: int) -> str:
    return sentence[max(0, start - 50) : end + 30].lower()


def _infer(context: str, table: list[tuple[str, tuple[str, ...]]]) -> str:
    for metric, cues in table:
        if any(re.search(rf"\b{re.escape(cue)}", context) for cue in cues):
            return metric
    return "unknown"


def _looks_like_year(number: str, suffix: str | None) -> bool:
    return suffix is None and re.fullmatch(r"(19|20)\d{2}", number) is not None


def _sentence_claims(sentence: str, section: str) -> list[NumericalClaim]:
    claims: list[NumericalClaim] = []
    for match in CURRENCY_RE.finditer(sentence):
        number, suffix = match.group(1), match.group(2)
        claims.append(
            NumericalClaim(
                value=_to_value(number, suffix),
                raw_text=match.group(0).strip(),
                metric=_infer(_context(sentence, match.start(), match.end()), _CURRENCY_METRICS),
                unit="usd",
                section=section,
                sentence=sentence,
            )
        )
    for match in PERCENT_RE.finditer(sentence):
        claims.append(
            NumericalClaim(
                value=float(match.group(1).replace(",", "")),
                raw_text=match.group(0).strip(),
                metric=_infer(_context(sentence, match.start(), match.end()), _PERCENT_METRICS),
                unit="percent",
                section=section,
                sentence=sentence,
            )
        )
    for match in COUNT_RE.finditer(sentence):
        number, suffix, noun = match.group(1), match.group(2), match.group(3).lower()
        if _looks_like_year(number, suffix):
            continue
        claims.append(
            NumericalClaim(
                value=_to_value(number, suffix),
                raw_text=match.group(0).strip(),
                metric=_COUNT_METRICS.get(noun, "user_count"),
                unit="count",
                section=section,
                sentence=sentence,
            )
        )
    return claims


def extract_numerical_claims(sections: dict[str, str]) -> list[NumericalClaim]:
    """Pull quantitative assertions (money, percentages, counted nouns) out of narrative text.

    Bare numbers such as years or list indices are not claims, so purely
    qualitative text yields an empty list.
    """
    claims: list[NumericalClaim] = []
    for section, text in sections.items():
        if not text:
            continue
        for sentence in _SENTENCE_SPLIT.split(text.strip()):
            claims.extend(_sentence_claims(sentence, section))
    return claims


def grounding_facts(envelopes: Iterable[GroundingEnvelope]) -> dict[str, float]:
    """Flatten numeric fields from envelope payloads into one lookup table."""
    facts: dict[str, float] = {}
    for envelope in envelopes:
        payload = envelope.payload
        if not isinstance(payload, dict):
            continue
        for key, raw in payload.items():
            value = to_number(raw)
            if value is not None and key not in facts:
                facts[key] = value
    return facts


def verify_claims_against_grounding(
    claims: list[NumericalClaim],
    grounding: dict[str, Any] | None,
    tolerance: float = DEFAULT_TOLERANCE,
) -> ClaimVerificationResult:
    """Compare each claim with the matching grounding field.

    A claim is grounded when its relative difference from the grounding value
    is within ``tolerance``; beyond it the claim is contradicted. Claims with
    no matching numeric field are counted as unverifiable.
    """
    if tolerance < 0:
        raise ValueError("tolerance must be non-negative")
    payload = grounding or {}
    result = ClaimVerificationResult(total_claims=len(claims))

    for claim in claims:
        key = GROUNDING_KEYS.get(claim.metric)
        reference = to_number(payload.get(key)) if key else None
        if key is None or reference is None:
            result.unverifiable_claims += 1
            continue

        denominator = abs(reference) if reference else 1.0
        difference = abs(claim.value - reference) / denominator
        if difference <= tolerance:
            result.grounded_claims += 1
            continue

        result.contradicted_claims += 1
        result.contradictions.append(
            ClaimContradiction(
                claim=claim,
                grounding_key=key,
                grounding_value=reference,
                relative_difference=round(difference, 3),
                explanation=(
                    f"{claim.section}: '{claim.raw_text}' ({claim.metric}) differs from "
                    f"grounded {key}={reference:,.2f} by {difference:.0%} "
                    f"(tolerance {tolerance:.0%})."
                ),
            )
        )

    if result.total_claims:
        result.grounding_rate = round(result.grounded_claims / result.total_claims, 2)
    logger.debug(
        "Claim check: total=%d grounded=%d contradicted=%d",
        result.total_claims,
        result.grounded_claims,
        result.contradicted_claims,
    )
    return result
