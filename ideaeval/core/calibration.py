from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import reduce
from typing import Callable

from ideaeval.core.domain import map_domain_to_rubric_profile
from ideaeval.core.schemas import (
    CalibrationOutcome,
    EvaluationResult,
    MarketSnapshot,
    Submission,
)
from ideaeval.core.utils import clamp, joined_lower

logger = logging.getLogger(__name__)

HARD_FAIL_NOTE = "CRITICAL: Hard fail triggered (no budget, vague pitch, no LP plan). Score collapsed to 0."
SCORE_FLOOR = 5.0
VAGUE_DESCRIPTION_CHARS = 100
SPARSE_INPUT_TAG = " [System: Confidence Low due to sparse input]"


@dataclass(frozen=True)
class CalibrationContext:
    domain: str
    profile: str
    submission: Submission | None = None
    market: MarketSnapshot | None = None

    @property
    def liquidity_plan(self) -> str:
        if self.submission is None:
            return ""
        return (self.submission.launch_liquidity_plan or "").lower()

    @property
    def go_to_market(self) -> str:
        if self.submission is None:
            return ""
        return (self.submission.go_to_market_plan or "").lower()

    @property
    def has_budget(self) -> bool:
        return self.submission is not None and "budget" in self.submission.resources

    @property
    def vague_description(self) -> bool:
        if self.submission is None:
            return False
        return len(self.submission.description.strip()) < VAGUE_DESCRIPTION_CHARS


Rule = Callable[[EvaluationResult, CalibrationContext], str | None]


@dataclass(frozen=True)
class _Step:
    result: EvaluationResult
    notes: tuple[str, ...] = ()


def _contains(text: str, cues: tuple[str, ...]) -> bool:
    return any(cue in text for cue in cues)


def _risk_text(result: EvaluationResult) -> str:
    return joined_lower(result.technical.key_risks + result.market.go_to_market_risks)


def _execution_text(result: EvaluationResult) -> str:
    return joined_lower(result.execution.execution_signals + result.execution.founder_readiness_flags)


def _launch_text(result: EvaluationResult) -> str:
    return joined_lower(result.launch_readiness_signals)


def _is_meme_or_hype(result: EvaluationResult, ctx: CalibrationContext) -> bool:
    if ctx.profile == "memecoin":
        return True
    summary = f"{result.summary.one_liner} {result.summary.main_verdict}".lower()
    return _contains(summary, ("meme", "pure hype", "no real utility", "speculative"))


def _defi_security_signals(result: EvaluationResult) -> bool:
    text = _risk_text(result) + " " + result.technical.comments.lower()
    return _contains(text, ("audit", "security", "regulation", "compliance"))


def _has_specific_audience(result: EvaluationResult) -> bool:
    audience = result.market.target_audience
    return bool(audience) and len(audience[0]) > 3


def _has_lock(plan: str) -> bool:
    return _contains(plan, ("lock", "vesting", "burn"))


def _meme_liquidity_plan(result: EvaluationResult, ctx: CalibrationContext) -> bool:
    signals = _launch_text(result)
    return _contains(signals, ("liquidity", "lp", "treasury")) or len(ctx.liquidity_plan) > 10


# --- memecoin -------------------------------------------------------------


def meme_brand_dependence(result: EvaluationResult, ctx: CalibrationContext) -> str | None:
    if not _is_meme_or_hype(result, ctx):
        return None
    description = ctx.submission.description.lower() if ctx.submission else ""
    legal_cues = ("legal", "copyright", "ip infringement", "trademark", "scam", "celebrity")
    if not (_contains(_risk_text(result), legal_cues) or "celebrity" in description):
        return None
    result.overall_score -= 20
    return "Memecoin: minus points for heavy dependence on one celebrity/brand without a twist."


def meme_weak_narrative(result: EvaluationResult, ctx: CalibrationContext) -> str | None:
    if not _is_meme_or_hype(result, ctx) or result.market.market_fit_score >= 50:
        return None
    result.overall_score -= 10
    return "Memecoin: minus points for weak or generic meme narrative."


def meme_unlocked_liquidity(result: EvaluationResult, ctx: CalibrationContext) -> str | None:
    if ctx.profile != "memecoin" or ctx.submission is None:
        return None
    if _has_lock(ctx.liquidity_plan):
        return None
    result.overall_score -= 8
    return "Memecoin: minus points for launching without locked or burned liquidity."


def meme_vague_go_to_market(result: EvaluationResult, ctx: CalibrationContext) -> str | None:
    if ctx.profile != "memecoin" or ctx.submission is None:
        return None
    plan = ctx.go_to_market
    concrete = ("community", "raid", "influencer", "kol", "airdrop", "content", "ambassador")
    if len(plan.strip()) >= 40 and _contains(plan, concrete):
        return None
    result.overall_score -= 5
    return "Memecoin: minus points for a vague go-to-market with no explicit community plan."


def meme_score_band(result: EvaluationResult, ctx: CalibrationContext) -> str | None:
    if not _is_meme_or_hype(result, ctx):
        return None
    banded = clamp(result.overall_score, 10, 90)
    if banded == result.overall_score:
        return None
    result.overall_score = banded
    return "Memecoin: overall score held inside the 10-90 band."


def meme_market_tailwind(result: EvaluationResult, ctx: CalibrationContext) -> str | None:
    if not _is_meme_or_hype(result, ctx) or ctx.market is None:
        return None
    if ctx.market.sol_price_usd <= 150:
        return None
    result.overall_score += 2
    return "Market: plus points for launching during strong Solana price action (> $150)."


# --- defi -----------------------------------------------------------------


def defi_security_gap(result: EvaluationResult, ctx: CalibrationContext) -> str | None:
    if ctx.profile != "defi":
        return None
    complex_build = result.execution.complexity_level == "high"
    token_without_audience = result.tokenomics.token_needed and not _has_specific_audience(result)
    if not ((complex_build and not _defi_security_signals(result)) or token_without_audience):
        return None
    result.overall_score -= 5
    return "DeFi: minus points for high complexity and no audit/security plan mentioned."


def defi_security_bonus(result: EvaluationResult, ctx: CalibrationContext) -> str | None:
    if ctx.profile != "defi":
        return None
    if result.execution.complexity_level == "high":
        return None
    if not (_defi_security_signals(result) and _has_specific_audience(result)):
        return None
    result.overall_score += 5
    return "DeFi: plus points for explicit audit/security thinking and a concrete target user."


def defi_score_band(result: EvaluationResult, ctx: CalibrationContext) -> str | None:
    if ctx.profile != "defi":
        return None
    banded = clamp(result.overall_score, 10, 95)
    if banded == result.overall_score:
        return None
    result.overall_score = banded
    return "DeFi: overall score held inside the 10-95 band."


def defi_risk_off_market(result: EvaluationResult, ctx: CalibrationContext) -> str | None:
    if ctx.profile != "defi" or ctx.market is None:
        return None
    if ctx.market.btc_dominance <= 60 or result.execution.complexity_level != "high":
        return None
    result.overall_score -= 2
    return "DeFi: minus points for high complexity during risk-off market conditions."


def defi_risk_on_market(result: EvaluationResult, ctx: CalibrationContext) -> str | None:
    if ctx.profile != "defi" or ctx.market is None:
        return None
    if ctx.market.btc_dominance >= 40 or not _defi_security_signals(result):
        return None
    result.overall_score += 3
    return "DeFi: plus points for launching during favorable risk-on market conditions."


# --- strong infra ---------------------------------------------------------


def _strong_infra(result: EvaluationResult) -> bool:
    return (
        result.technical.feasibility_score >= 75
        and result.market.market_fit_score >= 75
        and not result.tokenomics.token_needed
    )


def strong_infra_floor(result: EvaluationResult, ctx: CalibrationContext) -> str | None:
    if not _strong_infra(result) or result.overall_score >= 60:
        return None
    result.overall_score = 60
    return "Infra: raised to 60 for a clear pain point and a realistic data/infra story."


def strong_infra_cap(result: EvaluationResult, ctx: CalibrationContext) -> str | None:
    if not _strong_infra(result) or result.overall_score <= 90:
        return None
    result.overall_score = 90
    return "Infra: capped at 90 to maintain realism."


# --- execution ------------------------------------------------------------


def _meme_track_record(result: EvaluationResult) -> bool:
    return _contains(_execution_text(result), ("shipped", "track record", "previous exit"))


def meme_anon_team(result: EvaluationResult, ctx: CalibrationContext) -> str | None:
    if ctx.profile != "memecoin":
        return None
    if "anon" not in _execution_text(result) or _meme_track_record(result):
        return None
    result.execution.execution_risk_score -= 10
    result.execution.execution_risk_label = "high"
    return "Execution: minus points for anon team with no prior shipped products."


def meme_track_record(result: EvaluationResult, ctx: CalibrationContext) -> str | None:
    if ctx.profile != "memecoin" or not _meme_track_record(result):
        return None
    result.execution.execution_risk_score += 10
    return "Execution: plus points for proven domain experience and previous launches."


def _defi_experience(result: EvaluationResult) -> bool:
    text = _execution_text(result)
    return _contains(text, ("defi experience", "solidity", "rust", "audit", "security partner"))


def defi_inexperienced_complex(result: EvaluationResult, ctx: CalibrationContext) -> str | None:
    if ctx.profile != "defi" or result.execution.complexity_level != "high":
        return None
    if _defi_experience(result):
        return None
    result.execution.execution_risk_score -= 15
    result.execution.execution_risk_label = "high"
    result.overall_score = max(10, result.overall_score - 5)
    return "Execution: minus points for complex DeFi protocol without specific experience or audits."


def defi_experience(result: EvaluationResult, ctx: CalibrationContext) -> str | None:
    if ctx.profile != "defi" or not _defi_experience(result):
        return None
    result.execution.execution_risk_score += 10
    return "Execution: plus points for DeFi experience or security partners."


def _ml_background(result: EvaluationResult) -> bool:
    return _contains(_execution_text(result), ("ml engineer", "phd", "faang", "research"))


def ai_without_ml_background(result: EvaluationResult, ctx: CalibrationContext) -> str | None:
    if ctx.profile != "ai" or result.execution.complexity_level != "high":
        return None
    if _ml_background(result):
        return None
    result.execution.execution_risk_score -= 10
    result.execution.execution_risk_label = "high"
    return "Execution: minus points for ambitious AI project without clear ML/engineering background."


def ai_ml_background(result: EvaluationResult, ctx: CalibrationContext) -> str | None:
    if ctx.profile != "ai" or not _ml_background(result):
        return None
    result.execution.execution_risk_score += 10
    return "Execution: plus points for strong technical/ML background."


# --- launch readiness -----------------------------------------------------


def meme_no_liquidity_plan(result: EvaluationResult, ctx: CalibrationContext) -> str | None:
    if ctx.profile != "memecoin" or result.launch_readiness_score is None:
        return None
    if _meme_liquidity_plan(result, ctx):
        return None
    result.launch_readiness_score -= 20
    result.launch_readiness_label = "low"
    return "Launch (memecoin): minus points for no LP or anti-rug thinking."


def meme_liquidity_and_community(result: EvaluationResult, ctx: CalibrationContext) -> str | None:
    if ctx.profile != "memecoin" or result.launch_readiness_score is None:
        return None
    community = _contains(_launch_text(result), ("community", "content", "viral")) or len(
        ctx.go_to_market
    ) > 10
    if not (_meme_liquidity_plan(result, ctx) and community):
        return None
    result.launch_readiness_score += 10
    return "Launch: plus points for clear LP and community plan."


def meme_rug_downgrade(result: EvaluationResult, ctx: CalibrationContext) -> str | None:
    checks = result.crypto_native_checks
    if ctx.profile != "memecoin" or checks is None or checks.rug_pull_risk != "high":
        return None
    plan = ctx.liquidity_plan
    self_buy = _contains(
        plan, ("self-buy", "my own money", "own capital", "self fund", "buy 500", "buy 1000", "buy $")
    )
    if not (self_buy and _contains(plan, ("lock", "vesting"))):
        return None
    checks.rug_pull_risk = "medium"
    return "Rug risk: downgraded to medium due to standard degen setup (self-buy + lock)."


def meme_anti_rug(result: EvaluationResult, ctx: CalibrationContext) -> str | None:
    checks = result.crypto_native_checks
    if ctx.profile != "memecoin" or checks is None or checks.rug_pull_risk == "low":
        return None
    plan = ctx.liquidity_plan
    anti_rug = _contains(plan, ("renounce", "burn", "audit", "no stealth", "revoked"))
    if not (anti_rug and _contains(plan, ("lock", "vesting"))):
        return None
    checks.rug_pull_risk = "low"
    if result.launch_readiness_score is not None:
        result.launch_readiness_score += 5
    return "Rug risk: upgraded to low due to strong anti-rug measures."


def defi_no_audit_plan(result: EvaluationResult, ctx: CalibrationContext) -> str | None:
    if ctx.profile != "defi" or result.launch_readiness_score is None:
        return None
    if _contains(_launch_text(result), ("audit", "security")):
        return None
    result.launch_readiness_score -= 15
    return "Launch: minus points for no security/audit plan."


def defi_audit_and_gtm(result: EvaluationResult, ctx: CalibrationContext) -> str | None:
    if ctx.profile != "defi" or result.launch_readiness_score is None:
        return None
    signals = _launch_text(result)
    if not (_contains(signals, ("audit", "security")) and _contains(signals, ("user", "acquisition", "market"))):
        return None
    result.launch_readiness_score += 10
    return "Launch: plus points for security plan and clear GTM."


PRODUCT_PROFILES = ("ai", "saas", "generic")


def _mvp_and_data(result: EvaluationResult, ctx: CalibrationContext) -> tuple[bool, bool]:
    signals = _launch_text(result)
    scope = (ctx.submission.mvp_scope or "").lower() if ctx.submission else ""
    has_mvp = _contains(signals, ("mvp", "prototype", "demo")) or len(scope) > 10
    has_data = _contains(signals, ("data", "dataset", "infra")) or "data" in scope
    return has_mvp, has_data


def product_vague_launch(result: EvaluationResult, ctx: CalibrationContext) -> str | None:
    if ctx.profile not in PRODUCT_PROFILES or result.launch_readiness_score is None:
        return None
    has_mvp, has_data = _mvp_and_data(result, ctx)
    vague = _contains(_launch_text(result), ("vague", "unclear"))
    if not (vague or (not has_mvp and not has_data)):
        return None
    result.launch_readiness_score -= 15
    result.launch_readiness_label = "low"
    return "Launch: minus points for vague MVP/data plan."


def product_mvp_and_data(result: EvaluationResult, ctx: CalibrationContext) -> str | None:
    if ctx.profile not in PRODUCT_PROFILES or result.launch_readiness_score is None:
        return None
    has_mvp, has_data = _mvp_and_data(result, ctx)
    if not (has_mvp and has_data):
        return None
    result.launch_readiness_score += 10
    return "Launch: plus points for realistic MVP scope and data plan."


# --- investor constraints -------------------------------------------------


def solo_founder_cap(result: EvaluationResult, ctx: CalibrationContext) -> str | None:
    if ctx.submission is None or ctx.submission.team_size != "solo":
        return None
    execution = result.execution
    if execution.complexity_level != "high" or execution.execution_risk_score <= 60:
        return None
    execution.execution_risk_score = 60
    execution.execution_risk_label = "high"
    return "Constraint: solo founder execution score capped due to high complexity."


def meme_no_budget_launch_cap(result: EvaluationResult, ctx: CalibrationContext) -> str | None:
    if ctx.profile != "memecoin" or ctx.submission is None or ctx.has_budget:
        return None
    if result.launch_readiness_score is None or result.launch_readiness_score <= 40:
        return None
    result.launch_readiness_score = 40
    result.launch_readiness_label = "low"
    return "Constraint: memecoin without budget capped at low launch readiness."


def meme_no_budget_penalty(result: EvaluationResult, ctx: CalibrationContext) -> str | None:
    if ctx.profile != "memecoin" or ctx.submission is None or ctx.has_budget:
        return None
    if result.overall_score <= 20:
        return None
    result.overall_score -= 10
    return "Constraint: overall score penalty for memecoin with no budget."


def vague_description(result: EvaluationResult, ctx: CalibrationContext) -> str | None:
    if not ctx.vague_description:
        return None
    result.overall_score -= 5
    result.technical.comments += SPARSE_INPUT_TAG
    return "Constraint: minor penalty for vague/short description."


def defi_admin_risk(result: EvaluationResult, ctx: CalibrationContext) -> str | None:
    if ctx.profile != "defi":
        return None
    if not _contains(joined_lower(result.technical.key_risks), ("admin", "centralization")):
        return None
    plan = ""
    if ctx.submission is not None:
        plan = f"{ctx.submission.mvp_scope or ''} {ctx.submission.description}".lower()
    if _contains(plan, ("timelock", "dao", "multisig", "immutable")):
        return None
    result.execution.execution_risk_score = min(result.execution.execution_risk_score, 40)
    if result.crypto_native_checks is not None:
        result.crypto_native_checks.rug_pull_risk = "high"
    return "Constraint: DeFi with centralization risks and no safeguards flagged as high risk."


# --- liquidity, hard fail, final nudge -----------------------------------


def _lock_detail(plan: str) -> str:
    if _contains(plan, ("1 year", "12 months", "365 days")):
        return "Locked for 1 year"
    if _contains(plan, ("6 months", "180 days")):
        return "Locked for 6 months"
    if _contains(plan, ("3 months", "90 days")):
        return "Locked for 3 months"
    if _contains(plan, ("1 month", "30 days")):
        return "Locked for 30 days"
    if "burn" in plan:
        return "Liquidity burned"
    if _contains(plan, ("lock", "vesting")):
        return "Locked (unknown duration)"
    return "Unclear duration"


def liquidity_grade(result: EvaluationResult, ctx: CalibrationContext) -> str | None:
    checks = result.crypto_native_checks
    plan = ctx.liquidity_plan
    if checks is None or not plan:
        return None
    checks.liquidity_detail = _lock_detail(plan)
    if _contains(plan, ("burn", "1 year", "12 months")):
        checks.liquidity_grade = "strong"
    elif _contains(plan, ("6 months", "180 days")):
        checks.liquidity_grade = "medium"
    elif _contains(plan, ("1 month", "30 days", "short")):
        checks.liquidity_grade = "weak"
        return "Liquidity: short lock period (30d) is considered a weak signal."
    else:
        checks.liquidity_grade = "medium" if checks.liquidity_status == "locked" else "weak"
    return f"Liquidity: LP plan graded {checks.liquidity_grade} ({checks.liquidity_detail})."


def meme_hard_fail(result: EvaluationResult, ctx: CalibrationContext) -> str | None:
    if ctx.profile != "memecoin" or ctx.submission is None:
        return None
    has_lp = _contains(_launch_text(result), ("liquidity", "lp")) or len(ctx.liquidity_plan) > 10
    if ctx.has_budget or not ctx.vague_description or has_lp:
        return None
    result.overall_score = 0
    return HARD_FAIL_NOTE


def launch_overall_alignment(result: EvaluationResult, ctx: CalibrationContext) -> str | None:
    launch = result.launch_readiness_score
    if launch is None or result.overall_score == 0:
        return None
    if result.overall_score >= 70 and launch < 40:
        result.overall_score -= 5
        return "Overall: minus points for severe lack of launch readiness despite good idea."
    if 50 <= result.overall_score < 70 and launch >= 80:
        result.overall_score += 5
        return "Overall: plus points for exceptional launch readiness."
    return None


RULES: tuple[Rule, ...] = (
    meme_brand_dependence,
    meme_weak_narrative,
    meme_unlocked_liquidity,
    meme_vague_go_to_market,
    meme_score_band,
    meme_market_tailwind,
    defi_security_gap,
    defi_security_bonus,
    defi_score_band,
    defi_risk_off_market,
    defi_risk_on_market,
    strong_infra_floor,
    strong_infra_cap,
    meme_anon_team,
    meme_track_record,
    defi_inexperienced_complex,
    defi_experience,
    ai_without_ml_background,
    ai_ml_background,
    meme_no_liquidity_plan,
    meme_liquidity_and_community,
    meme_rug_downgrade,
    meme_anti_rug,
    defi_no_audit_plan,
    defi_audit_and_gtm,
    product_vague_launch,
    product_mvp_and_data,
    solo_founder_cap,
    meme_no_budget_launch_cap,
    meme_no_budget_penalty,
    vague_description,
    defi_admin_risk,
    liquidity_grade,
    meme_hard_fail,
    launch_overall_alignment,
)


def clamp_scores(result: EvaluationResult) -> None:
    result.overall_score = clamp(result.overall_score)
    result.technical.feasibility_score = clamp(result.technical.feasibility_score)
    result.tokenomics.design_score = clamp(result.tokenomics.design_score)
    result.market.market_fit_score = clamp(result.market.market_fit_score)
    result.execution.execution_risk_score = clamp(result.execution.execution_risk_score)
    if result.launch_readiness_score is not None:
        result.launch_readiness_score = clamp(result.launch_readiness_score)


def _apply(step: _Step, rule: Rule, ctx: CalibrationContext) -> _Step:
    result = step.result.copy()
    note = rule(result, ctx)
    clamp_scores(result)
    if note is None:
        return _Step(result=result, notes=step.notes)
    return _Step(result=result, notes=step.notes + (note,))


def _launch_label(score: float) -> str:
    if score >= 70:
        return "high"
    if score >= 40:
        return "medium"
    return "low"


def _crypto_checks_relevant(result: EvaluationResult, ctx: CalibrationContext) -> bool:
    if ctx.profile in ("memecoin", "defi") or result.tokenomics.token_needed:
        return True
    plan = ctx.liquidity_plan
    return len(plan) > 5 and not _contains(plan, ("no token", "self-funded", "none", "n/a"))


def _finalize(step: _Step, ctx: CalibrationContext) -> CalibrationOutcome:
    result = step.result.copy()
    hard_fail = HARD_FAIL_NOTE in step.notes
    if hard_fail:
        result.overall_score = 0.0
    else:
        result.overall_score = max(SCORE_FLOOR, result.overall_score)
    clamp_scores(result)
    if result.launch_readiness_score is not None:
        result.launch_readiness_label = _launch_label(result.launch_readiness_score)
    if not _crypto_checks_relevant(result, ctx):
        result.crypto_native_checks = None
    result.calibration_notes = list(step.notes)
    return CalibrationOutcome(result=result, calibration_notes=list(step.notes), hard_fail=hard_fail)


def calibrate_score(
    raw_result: EvaluationResult,
    domain: str,
    submission: Submission | None = None,
    market: MarketSnapshot | None = None,
) -> CalibrationOutcome:
    """Apply the ordered deterministic calibration rules to a judged result.

    Every rule works on its own copy of the result and contributes at most one
    note; scores are clamped to [0, 100] after each rule. The raw result is
    never mutated.
    """
    ctx = CalibrationContext(
        domain=domain,
        profile=map_domain_to_rubric_profile(domain),
        submission=submission,
        market=market if market is not None and market.is_usable else None,
    )
    initial = _Step(result=raw_result.copy())
    initial.result.calibration_notes = []
    clamp_scores(initial.result)
    final = reduce(lambda step, rule: _apply(step, rule, ctx), RULES, initial)
    outcome = _finalize(final, ctx)
    logger.info(
        "Calibrated %s result: %.1f -> %.1f (%d note(s))",
        domain,
        raw_result.overall_score,
        outcome.result.overall_score,
        len(outcome.calibration_notes),
    )
    return outcome
