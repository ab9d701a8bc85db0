from __future__ import annotations

import copy
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from ideaeval.core.utils import as_utc, from_iso, to_iso, to_number, to_str_list, utc_now


JsonDict = dict[str, Any]

DOMAINS = ("crypto_defi", "memecoin", "ai_ml", "saas", "consumer", "hardware", "other")
LEVELS = ("low", "medium", "high")


class SchemaError(ValueError):
    """Raised when a model payload cannot be read as an evaluation result."""


@dataclass(frozen=True)
class Submission:
    description: str
    domain_hint: str | None = None
    team_size: str = "solo"
    resources: tuple[str, ...] = ()
    success_definition: str = ""
    response_style: str = "balanced"
    mvp_scope: str | None = None
    launch_liquidity_plan: str | None = None
    go_to_market_plan: str | None = None
    token_address: str | None = None

    def to_record(self) -> JsonDict:
        record = asdict(self)
        record["resources"] = list(self.resources)
        return record

    @staticmethod
    def from_record(record: JsonDict) -> "Submission":
        return Submission(
            description=str(record.get("description", "")),
            domain_hint=record.get("domain_hint") or record.get("project_type"),
            team_size=str(record.get("team_size", "solo")),
            resources=tuple(to_str_list(record.get("resources"))),
            success_definition=str(record.get("success_definition", "")),
            response_style=str(record.get("response_style", "balanced")),
            mvp_scope=record.get("mvp_scope"),
            launch_liquidity_plan=record.get("launch_liquidity_plan"),
            go_to_market_plan=record.get("go_to_market_plan"),
            token_address=record.get("token_address"),
        )


@dataclass
class GroundingEnvelope:
    payload: Any
    source: str
    fetched_at: datetime
    ttl_hours: float

    def age_hours(self, now: datetime | None = None) -> float:
        reference = as_utc(now or utc_now())
        return max(0.0, (reference - as_utc(self.fetched_at)).total_seconds() / 3600.0)

    def is_stale(self, now: datetime | None = None) -> bool:
        return self.age_hours(now) > self.ttl_hours

    def to_record(self) -> JsonDict:
        return {
            "payload": self.payload,
            "source": self.source,
            "fetched_at": to_iso(self.fetched_at),
            "ttl_hours": self.ttl_hours,
        }

    @staticmethod
    def from_record(record: JsonDict) -> "GroundingEnvelope":
        return GroundingEnvelope(
            payload=record.get("payload"),
            source=str(record["source"]),
            fetched_at=from_iso(record.get("fetched_at")) or utc_now(),
            ttl_hours=float(record.get("ttl_hours", 24.0)),
        )


@dataclass(frozen=True)
class GroundingUnavailable:
    source: str
    reason: str
    status: str = "not_available"


@dataclass
class MarketSnapshot:
    btc_dominance: float
    sol_price_usd: float
    total_market_cap_usd: float | None = None
    source: str = "coingecko"
    timestamp: datetime | None = None

    @property
    def is_usable(self) -> bool:
        return self.source != "fallback"

    def to_record(self) -> JsonDict:
        record = asdict(self)
        record["timestamp"] = to_iso(self.timestamp)
        return record


@dataclass
class Summary:
    title: str = ""
    one_liner: str = ""
    main_verdict: str = ""


@dataclass
class TechnicalSection:
    feasibility_score: float = 0.0
    key_risks: list[str] = field(default_factory=list)
    required_components: list[str] = field(default_factory=list)
    comments: str = ""


@dataclass
class TokenomicsSection:
    token_needed: bool = False
    design_score: float = 0.0
    main_issues: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)


@dataclass
class MarketSection:
    market_fit_score: float = 0.0
    target_audience: list[str] = field(default_factory=list)
    competitor_signals: list[str] = field(default_factory=list)
    go_to_market_risks: list[str] = field(default_factory=list)


@dataclass
class ExecutionSection:
    complexity_level: str = "medium"
    founder_readiness_flags: list[str] = field(default_factory=list)
    estimated_timeline: str = ""
    execution_risk_score: float = 50.0
    execution_risk_label: str = "medium"
    execution_signals: list[str] = field(default_factory=list)


@dataclass
class Recommendations:
    must_fix_before_build: list[str] = field(default_factory=list)
    recommended_pivots: list[str] = field(default_factory=list)
    nice_to_have_later: list[str] = field(default_factory=list)


@dataclass
class CryptoNativeChecks:
    rug_pull_risk: str = "medium"
    audit_status: str = "none"
    liquidity_status: str = "unclear"
    is_anon_team: bool | None = None
    is_liquidity_locked: bool | None = None
    liquidity_grade: str | None = None
    liquidity_detail: str | None = None


def _section(payload: JsonDict, key: str) -> JsonDict:
    value = payload.get(key, {})
    if not isinstance(value, dict):
        return {}
    return value


def _score(value: Any, default: float = 0.0) -> float:
    number = to_number(value, default)
    return default if number is None else number


def _level(value: Any, default: str = "medium") -> str:
    text = str(value or "").strip().lower()
    return text if text in LEVELS else default


@dataclass
class EvaluationResult:
    overall_score: float
    summary: Summary = field(default_factory=Summary)
    technical: TechnicalSection = field(default_factory=TechnicalSection)
    tokenomics: TokenomicsSection = field(default_factory=TokenomicsSection)
    market: MarketSection = field(default_factory=MarketSection)
    execution: ExecutionSection = field(default_factory=ExecutionSection)
    recommendations: Recommendations = field(default_factory=Recommendations)
    crypto_native_checks: CryptoNativeChecks | None = None
    launch_readiness_score: float | None = None
    launch_readiness_label: str | None = None
    launch_readiness_signals: list[str] = field(default_factory=list)
    reasoning_steps: list[str] = field(default_factory=list)
    sub_scores: dict[str, float] = field(default_factory=dict)
    calibration_notes: list[str] = field(default_factory=list)

    def copy(self) -> "EvaluationResult":
        return copy.deepcopy(self)

    def to_record(self) -> JsonDict:
        return asdict(self)

    @staticmethod
    def from_record(record: JsonDict) -> "EvaluationResult":
        return EvaluationResult.from_payload(record)

    @staticmethod
    def from_payload(payload: Any) -> "EvaluationResult":
        """Read a model's JSON object leniently.

        Missing lists become empty and numeric strings are coerced, but scores
        are never clamped here: an out-of-range score has to reach the verifier
        untouched.
        """
        if not isinstance(payload, dict):
            raise SchemaError(f"Expected a JSON object, got {type(payload).__name__}")
        if "overall_score" not in payload:
            raise SchemaError("Payload has no overall_score")
        overall = to_number(payload.get("overall_score"))
        if overall is None:
            raise SchemaError(f"overall_score is not numeric: {payload.get('overall_score')!r}")

        summary = _section(payload, "summary")
        technical = _section(payload, "technical")
        tokenomics = _section(payload, "tokenomics")
        market = _section(payload, "market")
        execution = _section(payload, "execution")
        recs = _section(payload, "recommendations")

        checks_raw = payload.get("crypto_native_checks")
        checks = None
        if isinstance(checks_raw, dict):
            checks = CryptoNativeChecks(
                rug_pull_risk=_level(checks_raw.get("rug_pull_risk")),
                audit_status=str(checks_raw.get("audit_status", "none")),
                liquidity_status=str(checks_raw.get("liquidity_status", "unclear")),
                is_anon_team=checks_raw.get("is_anon_team"),
                is_liquidity_locked=checks_raw.get("is_liquidity_locked"),
                liquidity_grade=checks_raw.get("liquidity_grade"),
                liquidity_detail=checks_raw.get("liquidity_detail"),
            )

        launch_score = to_number(payload.get("launch_readiness_score"))
        launch_label = payload.get("launch_readiness_label")
        sub_scores_raw = payload.get("sub_scores") or {}
        sub_scores = {}
        if isinstance(sub_scores_raw, dict):
            for key, value in sub_scores_raw.items():
                number = to_number(value)
                if number is not None:
                    sub_scores[str(key)] = number

        return EvaluationResult(
            overall_score=overall,
            summary=Summary(
                title=str(summary.get("title", "")),
                one_liner=str(summary.get("one_liner", "")),
                main_verdict=str(summary.get("main_verdict", "")),
            ),
            technical=TechnicalSection(
                feasibility_score=_score(technical.get("feasibility_score")),
                key_risks=to_str_list(technical.get("key_risks")),
                required_components=to_str_list(technical.get("required_components")),
                comments=str(technical.get("comments", "") or ""),
            ),
            tokenomics=TokenomicsSection(
                token_needed=bool(tokenomics.get("token_needed", False)),
                design_score=_score(tokenomics.get("design_score")),
                main_issues=to_str_list(tokenomics.get("main_issues")),
                suggestions=to_str_list(tokenomics.get("suggestions")),
            ),
            market=MarketSection(
                market_fit_score=_score(market.get("market_fit_score")),
                target_audience=to_str_list(market.get("target_audience")),
                competitor_signals=to_str_list(market.get("competitor_signals")),
                go_to_market_risks=to_str_list(market.get("go_to_market_risks")),
            ),
            execution=ExecutionSection(
                complexity_level=_level(execution.get("complexity_level")),
                founder_readiness_flags=to_str_list(execution.get("founder_readiness_flags")),
                estimated_timeline=str(execution.get("estimated_timeline", "") or ""),
                execution_risk_score=_score(execution.get("execution_risk_score"), 50.0),
                execution_risk_label=_level(execution.get("execution_risk_label")),
                execution_signals=to_str_list(execution.get("execution_signals")),
            ),
            recommendations=Recommendations(
                must_fix_before_build=to_str_list(recs.get("must_fix_before_build")),
                recommended_pivots=to_str_list(recs.get("recommended_pivots")),
                nice_to_have_later=to_str_list(recs.get("nice_to_have_later")),
            ),
            crypto_native_checks=checks,
            launch_readiness_score=launch_score,
            launch_readiness_label=_level(launch_label) if launch_label else None,
            launch_readiness_signals=to_str_list(payload.get("launch_readiness_signals")),
            reasoning_steps=to_str_list(payload.get("reasoning_steps")),
            sub_scores=sub_scores,
            calibration_notes=to_str_list(payload.get("calibration_notes")),
        )

    def narrative_sections(self) -> dict[str, str]:
        """Free-text blocks that may carry numerical claims, keyed by section."""
        return {
            "summary": " ".join([self.summary.one_liner, self.summary.main_verdict]).strip(),
            "technical": self.technical.comments,
            "risks": " ".join(self.technical.key_risks + self.market.go_to_market_risks),
            "market": " ".join(self.market.competitor_signals + self.market.target_audience),
            "execution": " ".join(self.execution.execution_signals),
        }


@dataclass
class NumericalClaim:
    value: float
    raw_text: str
    metric: str
    unit: str
    section: str
    sentence: str = ""


@dataclass
class ClaimContradiction:
    claim: NumericalClaim
    grounding_key: str
    grounding_value: float
    relative_difference: float
    explanation: str


@dataclass
class ClaimVerificationResult:
    total_claims: int = 0
    grounded_claims: int = 0
    contradicted_claims: int = 0
    unverifiable_claims: int = 0
    grounding_rate: float = 0.0
    contradictions: list[ClaimContradiction] = field(default_factory=list)

    def to_record(self) -> JsonDict:
        return asdict(self)


@dataclass
class VerificationOutcome:
    status: str
    issues: list[str]
    repaired: bool
    result: EvaluationResult
    quality_warnings: list[str] = field(default_factory=list)
    internal_warnings: list[str] = field(default_factory=list)
    repairs_used: int = 0
    checks_run: int = 0
    checks_failed: int = 0
    fatal_failure: bool = False
    claim_verification: ClaimVerificationResult | None = None

    def to_record(self) -> JsonDict:
        record = asdict(self)
        record.pop("result")
        return record


@dataclass
class CalibrationOutcome:
    result: EvaluationResult
    calibration_notes: list[str]
    hard_fail: bool = False


@dataclass
class FreshnessDetail:
    source: str
    staleness_hours: float
    ttl_hours: float
    freshness_score: float
    is_stale: bool


@dataclass
class DataFreshness:
    overall_freshness: float
    stale_source_count: int
    total_source_count: int
    worst_source: str | None
    details: list[FreshnessDetail] = field(default_factory=list)

    def to_record(self) -> JsonDict:
        return asdict(self)


@dataclass
class ConfidenceSignals:
    evidence_coverage: float
    verifier_status: str
    fallback_used: bool
    external_data_available: bool
    agent_failures: int = 0
    data_freshness: DataFreshness | None = None
    claim_verification: ClaimVerificationResult | None = None
    high_disagreement: bool = False
    top_disagreement_dimension: str | None = None


@dataclass
class Confidence:
    score: float
    level: str
    reasons: list[str]

    def to_record(self) -> JsonDict:
        return asdict(self)


@dataclass
class DisagreementMetrics:
    compared_agents: int
    overall_score_std_dev: float
    overall_score_variance: float
    high_disagreement_flag: bool
    dimensional_disagreement: dict[str, float] = field(default_factory=dict)
    top_disagreement_dimension: str | None = None
    disagreement_note: str = ""

    def to_record(self) -> JsonDict:
        return asdict(self)


@dataclass
class EvaluationReport:
    result: EvaluationResult
    meta: JsonDict
    verification: VerificationOutcome
    confidence: Confidence
    disagreement: DisagreementMetrics
    freshness: DataFreshness
    created_at: datetime = field(default_factory=utc_now)

    def to_record(self) -> JsonDict:
        return {
            "result": self.result.to_record(),
            "meta": self.meta,
            "verification": self.verification.to_record(),
            "confidence": self.confidence.to_record(),
            "disagreement": self.disagreement.to_record(),
            "freshness": self.freshness.to_record(),
            "created_at": to_iso(self.created_at),
        }
