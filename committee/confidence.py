from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from ideaeval.core.config import ConfidenceConfig
from ideaeval.core.schemas import (
    ClaimVerificationResult,
    Confidence,
    ConfidenceSignals,
    DataFreshness,
    FreshnessDetail,
    GroundingEnvelope,
)
from ideaeval.core.utils import clamp, utc_now

EMPTY_FRESHNESS_BASELINE = 0.3


def envelope_freshness(age_hours: float, ttl_hours: float) -> float:
    """Halves every ``ttl_hours``: 1.0 when just fetched, 0.5 at the ttl, decaying after."""
    ttl = ttl_hours if ttl_hours > 0 else 1.0
    return 0.5 ** (max(0.0, age_hours) / ttl)


def compute_data_freshness(
    envelopes: List[GroundingEnvelope], now: Optional[datetime] = None
) -> DataFreshness:
    if not envelopes:
        return DataFreshness(
            overall_freshness=EMPTY_FRESHNESS_BASELINE,
            stale_source_count=0,
            total_source_count=0,
            worst_source=None,
        )
    now = now or utc_now()
    details: List[FreshnessDetail] = []
    for envelope in envelopes:
        age = envelope.age_hours(now)
        details.append(
            FreshnessDetail(
                source=envelope.source,
                staleness_hours=round(age, 3),
                ttl_hours=envelope.ttl_hours,
                freshness_score=envelope_freshness(age, envelope.ttl_hours),
                is_stale=envelope.is_stale(now),
            )
        )
    worst = min(details, key=lambda d: d.freshness_score)
    average = sum(d.freshness_score for d in details) / len(details)
    overall = round(0.6 * average + 0.4 * worst.freshness_score, 3)
    return DataFreshness(
        overall_freshness=overall,
        stale_source_count=sum(1 for d in details if d.is_stale),
        total_source_count=len(details),
        worst_source=worst.source,
        details=details,
    )


def grounding_staleness_note(freshness: DataFreshness) -> str:
    if freshness.stale_source_count == 0:
        return ""
    lines = [
        "DATA FRESHNESS WARNING:",
        f"{freshness.stale_source_count} of {freshness.total_source_count} data sources "
        "are beyond their expected freshness window.",
    ]
    for detail in freshness.details:
        if detail.is_stale:
            lines.append(
                f"- {detail.source}: last refreshed {round(detail.staleness_hours)}h ago "
                f"(expected freshness: {detail.ttl_hours:g}h)"
            )
    lines.append(
        "Treat specific figures from stale sources as approximate. "
        "Do not present stale data with false precision."
    )
    return "\n".join(lines)


def compute_evidence_coverage(claims: Optional[ClaimVerificationResult]) -> float:
    """Share of numerical claims that could be checked against grounding data.

    With no numerical claims nothing was checked, so coverage is zero.
    """
    if claims is None or claims.total_claims == 0:
        return 0.0
    checked = claims.grounded_claims + claims.contradicted_claims
    return round(checked / claims.total_claims, 2)


def _level(score: float, cfg: ConfidenceConfig) -> str:
    if score >= cfg.high_threshold:
        return "high"
    if score >= cfg.medium_threshold:
        return "medium"
    return "low"


def derive_confidence(
    signals: ConfidenceSignals, cfg: Optional[ConfidenceConfig] = None
) -> Confidence:
    cfg = cfg or ConfidenceConfig()
    reasons: List[str] = []
    score = cfg.baseline

    if signals.evidence_coverage >= 0.8:
        score += cfg.high_coverage_bonus
        reasons.append("High factual evidence coverage.")
    elif signals.evidence_coverage >= 0.5:
        score += cfg.moderate_coverage_bonus
        reasons.append("Moderate factual evidence coverage.")
    else:
        score -= cfg.low_coverage_penalty
        reasons.append("Low factual evidence coverage.")

    status = signals.verifier_status
    if status == "pass":
        score += 10
        reasons.append("Verifier passed consistency checks.")
    elif status == "soft_fail":
        score -= 10
        reasons.append("Verifier found moderate consistency issues.")
    elif status == "hard_fail":
        score -= 25
        reasons.append("Verifier found severe factual or schema issues.")
    else:
        score -= 15
        reasons.append("Verifier unavailable; reliability reduced.")

    if signals.fallback_used:
        score -= cfg.fallback_penalty
        reasons.append("Backup judge model used after the primary failed.")

    if not signals.external_data_available:
        score -= cfg.no_external_data_penalty
        reasons.append("External grounding data unavailable.")

    if signals.agent_failures > 0:
        score -= min(signals.agent_failures * cfg.agent_failure_penalty, cfg.agent_failure_cap)
        reasons.append(f"{signals.agent_failures} committee analyst(s) failed to respond.")

    freshness = signals.data_freshness
    if freshness is not None:
        score -= cfg.freshness_weight * (1.0 - freshness.overall_freshness)
        if freshness.stale_source_count > 0:
            reasons.append(
                f"Data freshness degraded: {freshness.stale_source_count}/"
                f"{freshness.total_source_count} source(s) stale."
            )
        elif freshness.total_source_count == 0:
            reasons.append("No grounding sources; freshness at conservative baseline.")
        else:
            reasons.append("Grounding data is fresh.")

    claims = signals.claim_verification
    if claims is not None and claims.total_claims > 0:
        score -= claims.contradicted_claims * cfg.contradiction_penalty
        if claims.contradicted_claims > 0:
            reasons.append(f"{claims.contradicted_claims} numerical claim(s) contradicted grounding data.")
        elif claims.grounding_rate >= 0.6:
            reasons.append("Most numerical claims align with available grounding data.")

    score = clamp(score)
    level = _level(score, cfg)

    if signals.high_disagreement:
        score = clamp(score * cfg.disagreement_multiplier)
        level = _level(score, cfg)
        if level == "high":
            level = "medium"
        top = signals.top_disagreement_dimension
        reasons.append(
            f"Confidence reduced due to high committee disagreement on {top}."
            if top
            else "Confidence reduced due to high committee disagreement."
        )

    return Confidence(score=round(score, 1), level=level, reasons=reasons)
