from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Sequence

from committee.agent.analysts import run_analysts
from committee.agent.prompts import build_repair_prompt, format_grounding_brief
from committee.agent.roles import RUBRIC_DIMENSIONS, AnalystCall
from committee.agent.router import ModelRouter, call_capability, parse_evaluation, synthesize
from committee.agent.utils import Capability, build_capability
from committee.aggregation import compute_committee_disagreement, compute_weighted_committee_score
from committee.confidence import (
    compute_data_freshness,
    compute_evidence_coverage,
    derive_confidence,
    grounding_staleness_note,
)
from ideaeval.core.calibration import calibrate_score
from ideaeval.core.claims import grounding_facts
from ideaeval.core.config import EvaluatorConfig
from ideaeval.core.domain import classify_domain
from ideaeval.core.schemas import (
    ConfidenceSignals,
    EvaluationReport,
    EvaluationResult,
    GroundingEnvelope,
    GroundingUnavailable,
    MarketSnapshot,
    Submission,
    VerificationOutcome,
)
from ideaeval.core.utils import utc_now
from ideaeval.core.verifier import RepairFn, audit_claims, verify
from ideaeval.grounding import build_fetchers
from ideaeval.grounding.base import BaseGroundingFetcher
from ideaeval.grounding.market import snapshot_from_envelope

logger = logging.getLogger(__name__)


class EvaluationFailedError(RuntimeError):
    """Verification hit a fatal failure; the draft cannot be trusted or repaired."""

    def __init__(self, outcome: VerificationOutcome):
        super().__init__("Evaluation failed verification: " + "; ".join(outcome.issues))
        self.outcome = outcome


@dataclass
class CommitteeModels:
    bear: Capability | None
    bull: Capability | None
    judge: list[Capability] = field(default_factory=list)
    repair: Capability | None = None


def build_models(config: EvaluatorConfig, dry_run: bool = False) -> CommitteeModels:
    m = config.models

    def make(model: str | None) -> Capability | None:
        return build_capability(
            model,
            provider=m.provider,
            temperature=m.temperature,
            max_tokens=m.max_tokens,
            dry_run=dry_run,
        )

    judges = [c for c in (make(m.judge), make(m.judge_fallback)) if c is not None]
    return CommitteeModels(bear=make(m.bear), bull=make(m.bull), judge=judges, repair=make(m.repair))


async def fetch_grounding(
    fetchers: Sequence[BaseGroundingFetcher], timeout_seconds: float = 15.0
) -> tuple[list[GroundingEnvelope], list[GroundingUnavailable]]:
    """Run blocking fetchers concurrently in worker threads."""
    settled = await asyncio.gather(
        *(asyncio.wait_for(asyncio.to_thread(f.fetch), timeout=timeout_seconds) for f in fetchers),
        return_exceptions=True,
    )
    envelopes: list[GroundingEnvelope] = []
    unavailable: list[GroundingUnavailable] = []
    for fetcher, outcome in zip(fetchers, settled):
        if isinstance(outcome, GroundingEnvelope):
            envelopes.append(outcome)
        elif isinstance(outcome, GroundingUnavailable):
            unavailable.append(outcome)
        else:
            reason = str(outcome) or type(outcome).__name__
            unavailable.append(GroundingUnavailable(source=fetcher.source, reason=reason))
    for missing in unavailable:
        logger.warning(f"Grounding source {missing.source} unavailable: {missing.reason}")
    return envelopes, unavailable


def make_repair_fn(
    capability: Capability,
    grounding_brief: str = "",
    timeout_seconds: float = 45.0,
    cancel: asyncio.Event | None = None,
) -> RepairFn:
    async def repair(draft: EvaluationResult, issues: list[str]) -> EvaluationResult:
        prompt = build_repair_prompt(draft, issues, grounding_brief)
        text = await call_capability(capability, prompt, timeout_seconds, cancel)
        return parse_evaluation(text)

    return repair


def _per_dimension_scores(
    bear_call: AnalystCall, bull_call: AnalystCall, judge_result: EvaluationResult
) -> dict[str, list[float]]:
    sources = [judge_result.sub_scores]
    for call in (bear_call, bull_call):
        if call.opinion is not None:
            sources.append(call.opinion.rubric_scores)
    per_dimension: dict[str, list[float]] = {}
    for dimension in RUBRIC_DIMENSIONS:
        values = [float(s[dimension]) for s in sources if s.get(dimension) is not None]
        if values:
            per_dimension[dimension] = values
    return per_dimension


async def evaluate_submission(
    submission: Submission,
    config: EvaluatorConfig | None = None,
    models: CommitteeModels | None = None,
    envelopes: Sequence[GroundingEnvelope] | None = None,
    fetchers: Sequence[BaseGroundingFetcher] | None = None,
    market: MarketSnapshot | None = None,
    cancel: asyncio.Event | None = None,
    dry_run: bool = False,
    now: datetime | None = None,
) -> EvaluationReport:
    """Run one submission through the committee and return the calibrated report.

    Raises:
        AllModelsFailedError: both judge models failed
        EvaluationFailedError: the judged draft failed verification fatally
        EvaluationCancelled: ``cancel`` was set during a model call
    """
    config = config or EvaluatorConfig()
    models = models or build_models(config, dry_run=dry_run)
    now = now or utc_now()

    classification = classify_domain(
        submission.description, submission.domain_hint, extra_keywords=config.domain_keywords
    )
    domain = classification.domain
    logger.info(f"Classified submission as {domain} ({classification.confidence} confidence)")

    all_envelopes = list(envelopes or [])
    unavailable: list[GroundingUnavailable] = []
    if fetchers is None and config.grounding_enabled:
        fetchers = build_fetchers(config, submission)
    if fetchers:
        fetched, unavailable = await fetch_grounding(fetchers, config.timeouts.grounding_seconds)
        all_envelopes.extend(fetched)
    if market is None:
        market = snapshot_from_envelope(
            next((e for e in all_envelopes if e.source == "market_snapshot"), None)
        )

    freshness = compute_data_freshness(all_envelopes, now=now)
    staleness = grounding_staleness_note(freshness)
    brief = format_grounding_brief(all_envelopes, unavailable, now=now)

    bear_call, bull_call = await run_analysts(
        submission,
        domain,
        models.bear,
        models.bull,
        grounding_brief=brief,
        staleness_note=staleness,
        timeout_seconds=config.timeouts.analyst_seconds,
        cancel=cancel,
    )
    agent_failures = int(bear_call.failed) + int(bull_call.failed)

    router = ModelRouter(models.judge, timeout_seconds=config.timeouts.judge_seconds)
    judge = await synthesize(
        submission, bear_call, bull_call, brief, domain, router, cancel=cancel, staleness_note=staleness
    )
    draft = judge.result
    judge_score = draft.overall_score

    weighted = compute_weighted_committee_score(
        bear_call.opinion.risk_score if bear_call.opinion is not None else None,
        bull_call.opinion.upside_score if bull_call.opinion is not None else None,
        judge_score,
        weights=config.committee.weights,
    )
    # out-of-range judge scores go to the verifier untouched
    if config.committee.apply_weighting and 0.0 <= judge_score <= 100.0:
        draft.overall_score = weighted.weighted_score

    facts: dict[str, Any] | None = grounding_facts(all_envelopes) if all_envelopes else None
    repair_fn = (
        make_repair_fn(models.repair, brief, config.timeouts.repair_seconds, cancel)
        if models.repair is not None
        else None
    )
    outcome = await verify(
        draft,
        max_repairs=config.verifier.max_repairs,
        repair_fn=repair_fn,
        grounding=facts,
        claim_tolerance=config.verifier.claim_tolerance,
        cancel=cancel,
    )
    if outcome.fatal_failure:
        logger.error(f"Evaluation failed verification: {outcome.issues}")
        raise EvaluationFailedError(outcome)

    verified = outcome.result
    if outcome.status != "pass":
        first = outcome.issues[0] if outcome.issues else "No details"
        verified.technical.comments += f"\n[VERIFIER] {outcome.status.upper()} - {first}"
    claims = outcome.claim_verification or audit_claims(
        verified, facts or {}, config.verifier.claim_tolerance
    )

    calibration = calibrate_score(verified, domain, submission=submission, market=market)

    disagreement = compute_committee_disagreement(
        weighted.inputs,
        _per_dimension_scores(bear_call, bull_call, judge.result),
        threshold=config.committee.disagreement_threshold,
    )
    confidence = derive_confidence(
        ConfidenceSignals(
            evidence_coverage=compute_evidence_coverage(claims),
            verifier_status=outcome.status,
            fallback_used=judge.fallback_used,
            external_data_available=bool(all_envelopes),
            agent_failures=agent_failures,
            data_freshness=freshness,
            claim_verification=claims,
            high_disagreement=disagreement.high_disagreement_flag,
            top_disagreement_dimension=disagreement.top_disagreement_dimension,
        ),
        config.confidence,
    )

    meta = {
        "classified_domain": domain,
        "domain_confidence": classification.confidence,
        "fallback_used": judge.fallback_used,
        "model_route": {
            "bear": bear_call.model,
            "bull": bull_call.model,
            "judge": judge.model,
            "repair": models.repair.model if models.repair is not None else None,
        },
        "verifier_status": outcome.status,
        "confidence_level": confidence.level,
        "confidence_reasons": confidence.reasons,
        "committee_disagreement": disagreement.to_record(),
        "weighted_score": weighted.weighted_score,
        "weighted_score_inputs": weighted.inputs,
        "judge_raw_score": judge_score,
        "agent_failures": agent_failures,
        "claim_verification": claims.to_record(),
        "data_freshness": freshness.to_record(),
        "unavailable_sources": [u.source for u in unavailable],
    }
    logger.info(
        f"Evaluation complete: domain={domain} score={calibration.result.overall_score:.1f} "
        f"confidence={confidence.level} ({confidence.score:.1f})"
    )
    return EvaluationReport(
        result=calibration.result,
        meta=meta,
        verification=outcome,
        confidence=confidence,
        disagreement=disagreement,
        freshness=freshness,
        created_at=now,
    )
