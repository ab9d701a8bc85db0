from datetime import datetime, timedelta, timezone

import pytest

from committee.confidence import (
    EMPTY_FRESHNESS_BASELINE,
    compute_data_freshness,
    compute_evidence_coverage,
    derive_confidence,
    envelope_freshness,
    grounding_staleness_note,
)
from ideaeval.core.config import ConfidenceConfig
from ideaeval.core.schemas import ClaimVerificationResult, ConfidenceSignals, GroundingEnvelope

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _envelope(source: str, age_hours: float, ttl_hours: float) -> GroundingEnvelope:
    return GroundingEnvelope(
        payload={"value": 1},
        source=source,
        fetched_at=NOW - timedelta(hours=age_hours),
        ttl_hours=ttl_hours,
    )


def _signals(**overrides) -> ConfidenceSignals:
    fields = {
        "evidence_coverage": 1.0,
        "verifier_status": "pass",
        "fallback_used": False,
        "external_data_available": True,
    }
    fields.update(overrides)
    return ConfidenceSignals(**fields)


def test_envelope_freshness_halves_at_ttl() -> None:
    assert envelope_freshness(0, 24) == 1.0
    assert envelope_freshness(24, 24) == pytest.approx(0.5)
    assert envelope_freshness(48, 24) == pytest.approx(0.25)


def test_fresh_data_leaves_confidence_at_baseline() -> None:
    freshness = compute_data_freshness(
        [_envelope("market_snapshot", 0, 72), _envelope("token_security", 0, 24)], now=NOW
    )
    assert freshness.overall_freshness == 1.0
    assert freshness.stale_source_count == 0
    assert grounding_staleness_note(freshness) == ""

    baseline = derive_confidence(_signals())
    with_fresh = derive_confidence(_signals(data_freshness=freshness))
    assert with_fresh.score == baseline.score
    assert with_fresh.level == baseline.level


def test_stale_data_lowers_freshness_and_confidence() -> None:
    freshness = compute_data_freshness(
        [_envelope("competitive_memo", 168, 72), _envelope("market_snapshot", 48, 1)], now=NOW
    )
    assert freshness.stale_source_count == 2
    assert freshness.total_source_count == 2
    assert freshness.overall_freshness < 0.5
    assert freshness.worst_source == "market_snapshot"

    note = grounding_staleness_note(freshness)
    assert "competitive_memo" in note
    assert "market_snapshot" in note

    fresh = derive_confidence(_signals())
    stale = derive_confidence(_signals(data_freshness=freshness))
    assert stale.score < fresh.score
    assert any("2/2 source(s) stale" in reason for reason in stale.reasons)


def test_no_sources_uses_conservative_baseline() -> None:
    freshness = compute_data_freshness([], now=NOW)
    assert freshness.overall_freshness == EMPTY_FRESHNESS_BASELINE
    assert freshness.worst_source is None


def test_evidence_coverage() -> None:
    assert compute_evidence_coverage(None) == 0.0
    assert compute_evidence_coverage(ClaimVerificationResult()) == 0.0
    claims = ClaimVerificationResult(
        total_claims=3, grounded_claims=1, contradicted_claims=1, unverifiable_claims=1
    )
    assert compute_evidence_coverage(claims) == 0.67


def test_verifier_status_and_fallback_penalties() -> None:
    passed = derive_confidence(_signals())
    assert passed.score == 95
    assert passed.level == "high"

    degraded = derive_confidence(
        _signals(verifier_status="hard_fail", fallback_used=True, external_data_available=False)
    )
    assert degraded.score == 70 + 15 - 25 - 10 - 20
    assert degraded.level == "low"
    assert any("Backup judge" in r for r in degraded.reasons)
    assert any("External grounding data unavailable" in r for r in degraded.reasons)


def test_agent_failure_penalty_is_capped() -> None:
    result = derive_confidence(_signals(agent_failures=5))
    assert result.score == 95 - 15


def test_contradictions_are_penalized() -> None:
    claims = ClaimVerificationResult(total_claims=2, contradicted_claims=2)
    result = derive_confidence(_signals(evidence_coverage=1.0, claim_verification=claims))
    assert result.score == 95 - 20
    assert any("contradicted" in r for r in result.reasons)


def test_high_disagreement_caps_level_at_medium() -> None:
    result = derive_confidence(
        _signals(high_disagreement=True, top_disagreement_dimension="market_opportunity")
    )
    assert result.score == pytest.approx(80.75, abs=0.06)
    assert result.level == "medium"
    assert "market_opportunity" in result.reasons[-1]


def test_thresholds_are_configurable() -> None:
    strict = ConfidenceConfig(high_threshold=99, medium_threshold=90)
    assert derive_confidence(_signals(), strict).level == "medium"
    assert derive_confidence(_signals(evidence_coverage=0.2), strict).level == "low"


def test_freshness_decreases_as_an_envelope_ages() -> None:
    ages = [0, 12, 24, 36, 72, 240]
    scores = [
        compute_data_freshness([_envelope("market_snapshot", 1, 24), _envelope("memo", age, 24)], now=NOW).overall_freshness
        for age in ages
    ]
    assert scores == sorted(scores, reverse=True)
    assert scores[-1] < scores[0]
