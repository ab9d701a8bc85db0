from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from ideaeval.core.claims import (
    DEFAULT_TOLERANCE,
    extract_numerical_claims,
    verify_claims_against_grounding,
)
from ideaeval.core.schemas import (
    ClaimVerificationResult,
    EvaluationResult,
    VerificationOutcome,
)

logger = logging.getLogger(__name__)

RepairFn = Callable[[EvaluationResult, list[str]], Awaitable[EvaluationResult | None]]

FATAL = "fatal"
MAJOR = "major"
MINOR = "minor"

NEGATIVE_VERDICT_PATTERNS = (
    r"\bnot recommended\b",
    r"\bdo not (?:build|invest|pursue|launch)\b",
    r"\bavoid\b",
    r"\bkill\b",
    r"\breject(?:ed)?\b",
    r"\bdead on arrival\b",
    r"\bfatal(?:ly)? flaw",
)
POSITIVE_VERDICT_PATTERNS = (
    r"\bstrong buy\b",
    r"\bhighly recommended\b",
    r"\ball in\b",
    r"\bexceptional opportunity\b",
    r"\bmust build\b",
)


@dataclass
class CheckFailure:
    name: str
    severity: str
    message: str

    @property
    def warning(self) -> str:
        return f"{self.severity.capitalize()}: {self.message}"


def _bounded_scores(result: EvaluationResult) -> dict[str, float | None]:
    return {
        "overall_score": result.overall_score,
        "technical.feasibility_score": result.technical.feasibility_score,
        "tokenomics.design_score": result.tokenomics.design_score,
        "market.market_fit_score": result.market.market_fit_score,
        "execution.execution_risk_score": result.execution.execution_risk_score,
        "launch_readiness_score": result.launch_readiness_score,
    }


def check_score_bounds(result: EvaluationResult) -> CheckFailure | None:
    bad = [
        f"{name}={value:g}"
        for name, value in _bounded_scores(result).items()
        if value is not None and not 0 <= value <= 100
    ]
    if not bad:
        return None
    return CheckFailure("score_bounds", FATAL, f"Scores outside [0, 100]: {', '.join(bad)}.")


def check_required_sections(result: EvaluationResult) -> CheckFailure | None:
    missing = []
    if not result.summary.title.strip():
        missing.append("summary.title")
    if not result.summary.main_verdict.strip():
        missing.append("summary.main_verdict")
    if not result.technical.key_risks and not result.technical.comments.strip():
        missing.append("technical")
    if not result.market.target_audience:
        missing.append("market.target_audience")
    recs = result.recommendations
    if not (recs.must_fix_before_build or recs.recommended_pivots or recs.nice_to_have_later):
        missing.append("recommendations")
    if not missing:
        return None
    return CheckFailure("required_sections", MAJOR, f"Missing required sections: {', '.join(missing)}.")


def _matches_any(text: str, patterns: tuple[str, ...]) -> bool:
    return any(re.search(pattern, text) for pattern in patterns)


def check_verdict_consistency(result: EvaluationResult) -> CheckFailure | None:
    verdict = result.summary.main_verdict.lower()
    if result.overall_score >= 70 and _matches_any(verdict, NEGATIVE_VERDICT_PATTERNS):
        return CheckFailure(
            "verdict_consistency",
            MAJOR,
            f"Negative verdict contradicts a high overall score ({result.overall_score:g}).",
        )
    if result.overall_score < 40 and _matches_any(verdict, POSITIVE_VERDICT_PATTERNS):
        return CheckFailure(
            "verdict_consistency",
            MAJOR,
            f"Positive verdict contradicts a low overall score ({result.overall_score:g}).",
        )
    return None


def check_execution_label(result: EvaluationResult) -> CheckFailure | None:
    # execution_risk_score is a readiness score: higher means less execution risk.
    execution = result.execution
    label, score = execution.execution_risk_label, execution.execution_risk_score
    if (label == "high" and score >= 70) or (label == "low" and score < 40):
        return CheckFailure(
            "execution_label_consistency",
            MINOR,
            f"Execution risk label '{label}' does not match execution score {score:g}.",
        )
    return None


def check_competitor_evidence(result: EvaluationResult) -> CheckFailure | None:
    if result.market.competitor_signals:
        return None
    return CheckFailure(
        "competitor_evidence", MINOR, "No competitor signals were cited for the market assessment."
    )


def expected_launch_label(score: float) -> str:
    if score >= 70:
        return "high"
    if score >= 40:
        return "medium"
    return "low"


def check_launch_label(result: EvaluationResult) -> CheckFailure | None:
    score, label = result.launch_readiness_score, result.launch_readiness_label
    if score is None or label is None:
        return None
    expected = expected_launch_label(score)
    if label == expected:
        return None
    return CheckFailure(
        "launch_label_consistency",
        MINOR,
        f"Launch readiness label '{label}' should be '{expected}' for score {score:g}.",
    )


STRUCTURAL_CHECKS: tuple[Callable[[EvaluationResult], CheckFailure | None], ...] = (
    check_score_bounds,
    check_required_sections,
    check_verdict_consistency,
    check_execution_label,
    check_competitor_evidence,
    check_launch_label,
)


def audit_claims(
    result: EvaluationResult, grounding: dict[str, Any], tolerance: float = DEFAULT_TOLERANCE
) -> ClaimVerificationResult:
    claims = extract_numerical_claims(result.narrative_sections())
    return verify_claims_against_grounding(claims, grounding, tolerance=tolerance)


def _run_checks(
    result: EvaluationResult,
    grounding: dict[str, Any] | None,
    tolerance: float,
    factual: bool,
) -> tuple[list[CheckFailure], int, ClaimVerificationResult | None]:
    failures: list[CheckFailure] = []
    checks_run = 0
    for check in STRUCTURAL_CHECKS:
        checks_run += 1
        failure = check(result)
        if failure is not None:
            failures.append(failure)
            if failure.severity == FATAL:
                return failures, checks_run, None

    claim_result = None
    if grounding is not None:
        claim_result = audit_claims(result, grounding, tolerance)
    if factual and claim_result is not None:
        checks_run += 1
        if claim_result.contradicted_claims:
            details = "; ".join(c.explanation for c in claim_result.contradictions[:3])
            failures.append(
                CheckFailure(
                    "grounded_claims",
                    MAJOR,
                    f"{claim_result.contradicted_claims} numerical claim(s) contradict grounding data: {details}",
                )
            )
    return failures, checks_run, claim_result


def _status(failures: list[CheckFailure]) -> str:
    if any(f.severity == FATAL for f in failures):
        return "hard_fail"
    if failures:
        return "soft_fail"
    return "pass"


async def verify(
    draft: EvaluationResult,
    max_repairs: int = 2,
    repair_fn: RepairFn | None = None,
    grounding: dict[str, Any] | None = None,
    claim_tolerance: float = DEFAULT_TOLERANCE,
    cancel: asyncio.Event | None = None,
) -> VerificationOutcome:
    """Run the check battery over a draft and repair it within a fixed budget.

    Fatal failures (scores outside [0, 100]) end verification immediately
    without a repair attempt. Repairable failures call ``repair_fn`` at most
    ``max_repairs`` times, re-running every check after each attempt.
    Factual claim checks only run when both ``repair_fn`` and ``grounding``
    are supplied.
    """
    current = draft.copy()
    factual = repair_fn is not None and grounding is not None
    internal_warnings: list[str] = []
    repairs_used = 0
    checks_run = 0
    checks_failed = 0
    repaired = False

    while True:
        failures, ran, claim_result = _run_checks(current, grounding, claim_tolerance, factual)
        checks_run += ran
        checks_failed += len(failures)

        if any(f.severity == FATAL for f in failures):
            logger.warning("Verification fatal failure: %s", failures[-1].message)
            return VerificationOutcome(
                status="hard_fail",
                issues=[f.message for f in failures],
                repaired=False,
                result=current,
                quality_warnings=[f.warning for f in failures],
                internal_warnings=internal_warnings,
                repairs_used=repairs_used,
                checks_run=checks_run,
                checks_failed=checks_failed,
                fatal_failure=True,
                claim_verification=claim_result,
            )

        if not failures or repair_fn is None:
            break
        if cancel is not None and cancel.is_set():
            internal_warnings.append("Repair skipped: evaluation was cancelled.")
            break
        if repairs_used >= max_repairs:
            internal_warnings.append(
                f"Repair budget exhausted after {repairs_used} attempt(s); "
                f"{len(failures)} issue(s) remain."
            )
            break

        repairs_used += 1
        issues = [f.message for f in failures]
        logger.info("Repair attempt %d/%d for %d issue(s)", repairs_used, max_repairs, len(issues))
        try:
            candidate = await repair_fn(current.copy(), issues)
        except Exception as exc:
            logger.warning("Repair attempt %d failed: %s", repairs_used, exc)
            internal_warnings.append(f"Repair attempt {repairs_used} failed: {exc}")
            break
        if candidate is None:
            internal_warnings.append(f"Repair attempt {repairs_used} returned no result.")
            break
        if check_score_bounds(candidate) is not None:
            internal_warnings.append(
                f"Repair attempt {repairs_used} produced out-of-range scores and was discarded."
            )
            break
        current = candidate
        repaired = True

    status = _status(failures)
    if status == "pass":
        logger.info("Verification passed after %d repair(s)", repairs_used)
    return VerificationOutcome(
        status=status,
        issues=[f.message for f in failures],
        repaired=repaired,
        result=current,
        quality_warnings=[f.warning for f in failures],
        internal_warnings=internal_warnings,
        repairs_used=repairs_used,
        checks_run=checks_run,
        checks_failed=checks_failed,
        fatal_failure=False,
        claim_verification=claim_result,
    )
