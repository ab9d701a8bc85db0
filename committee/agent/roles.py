from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ideaeval.core.domain import map_domain_to_rubric_profile
from ideaeval.core.schemas import SchemaError
from ideaeval.core.utils import clamp, to_number, to_str_list

BEAR_VERDICTS = ("KILL", "AVOID", "SHORT")
BULL_VERDICTS = ("ALL IN", "APE", "LONG")
RUBRIC_DIMENSIONS = ("market_opportunity", "technical_feasibility", "competitive_moat", "execution_readiness")


@dataclass(frozen=True)
class RoleDefinition:
    role: str
    title: str
    objective: str
    primary_dimensions: tuple
    instructions: tuple
    weight: float


COMMITTEE_ROLES: Dict[str, RoleDefinition] = {
    "bear": RoleDefinition(
        role="bear",
        title="Adversarial Critic + Technical Risk Assessor",
        objective="Stress test the downside and identify specific failure paths that could kill the thesis.",
        primary_dimensions=("technical_feasibility", "failure_modes", "competitive_threats", "regulatory_risk"),
        instructions=(
            "Prioritize falsification: what makes this idea fail in real deployment?",
            "Use concrete failure modes, not generic risk statements.",
            "Assign lower scores when assumptions are unproven or security posture is weak.",
        ),
        weight=0.3,
    ),
    "bull": RoleDefinition(
        role="bull",
        title="Market Opportunity + Growth Analyst",
        objective="Find where outsized upside exists and what conditions would unlock durable growth.",
        primary_dimensions=("market_opportunity", "growth_trajectory", "customer_demand", "timing_window"),
        instructions=(
            "Prioritize evidence-backed upside, not narrative-only optimism.",
            "Explain why demand can materialize despite competition.",
            "Assign higher scores only when wedge and expansion paths are explicit.",
        ),
        weight=0.3,
    ),
    "judge": RoleDefinition(
        role="judge",
        title="Calibration Synthesizer + Decision Maker",
        objective="Reconcile the committee into one coherent, evidence-weighted final decision.",
        primary_dimensions=("score_calibration", "cross_validation", "uncertainty_handling", "final_composition"),
        instructions=(
            "Do not re-run the full analysis; reconcile Bear and Bull against the rubric anchors.",
            "Highlight disagreements and reduce confidence when evidence is thin.",
            "Show explicit composition math for the final score.",
        ),
        weight=0.4,
    ),
}

DOMAIN_DIMENSION_OVERLAYS: Dict[str, Dict[str, tuple]] = {
    "crypto_defi": {
        "bear": ("smart_contract_security", "tokenomics_risk"),
        "bull": ("value_accrual_design", "liquidity_strategy"),
        "judge": ("security_adjusted_calibration",),
    },
    "memecoin": {
        "bear": ("holder_concentration", "rug_pull_vectors"),
        "bull": ("narrative_momentum", "community_distribution"),
        "judge": ("narrative_vs_risk_calibration",),
    },
    "ai_ml": {
        "bear": ("model_commoditization_risk", "integration_complexity"),
        "bull": ("data_moat_strength", "distribution_compounding"),
        "judge": ("moat_durability_calibration",),
    },
    "saas": {
        "bear": ("churn_risk", "cac_payback_risk"),
        "bull": ("unit_economics_upside", "expansion_revenue"),
        "judge": ("unit_economics_calibration",),
    },
    "consumer": {
        "bear": ("retention_risk", "distribution_fragility"),
        "bull": ("engagement_loops", "viral_acquisition"),
        "judge": ("retention_adjusted_calibration",),
    },
    "hardware": {
        "bear": ("manufacturing_risk", "supply_chain_risk"),
        "bull": ("hardware_differentiation", "channel_leverage"),
        "judge": ("operational_risk_calibration",),
    },
}

DOMAIN_ROLE_ADDENDA: Dict[str, Dict[str, str]] = {
    "crypto_defi": {
        "bear": "Domain emphasis (DeFi): liquidation mechanics, oracle risk, governance attack surface.",
        "bull": "Domain emphasis (DeFi): fee capture path, liquidity bootstrapping, repeat usage behavior.",
        "judge": "Domain emphasis (DeFi): calibrate around security realism and sustainable yield assumptions.",
    },
    "memecoin": {
        "bear": "Domain emphasis (Memecoin): rug vectors, holder concentration, distribution fragility.",
        "bull": "Domain emphasis (Memecoin): narrative timing, distribution loops, community retention.",
        "judge": "Domain emphasis (Memecoin): weigh narrative upside against concentration and trust risk.",
    },
    "ai_ml": {
        "bear": "Domain emphasis (AI): wrapper risk, model commoditization, integration complexity.",
        "bull": "Domain emphasis (AI): proprietary data loops, distribution compounding, defensibility.",
        "judge": "Domain emphasis (AI): weigh opportunity against moat durability and execution realism.",
    },
    "saas": {
        "bear": "Domain emphasis (SaaS): churn sensitivity, weak ICP risk, CAC/LTV breakpoints.",
        "bull": "Domain emphasis (SaaS): expansion revenue, retention loops, distribution compounding.",
        "judge": "Domain emphasis (SaaS): check growth claims against retention and payback discipline.",
    },
    "consumer": {
        "bear": "Domain emphasis (Consumer): retention fragility, distribution dependency, engagement decay.",
        "bull": "Domain emphasis (Consumer): habit loops, social growth vectors, creator/community pull.",
        "judge": "Domain emphasis (Consumer): weigh upside against realistic retention and acquisition cost.",
    },
    "hardware": {
        "bear": "Domain emphasis (Hardware): manufacturing risk, BOM pressure, supply-chain fragility.",
        "bull": "Domain emphasis (Hardware): product differentiation and distribution channel leverage.",
        "judge": "Domain emphasis (Hardware): weigh upside against build cycles and operational risk.",
    },
}


def role_dimensions(role: str, domain: str) -> List[str]:
    dimensions = list(COMMITTEE_ROLES[role].primary_dimensions)
    for extra in DOMAIN_DIMENSION_OVERLAYS.get(domain, {}).get(role, ()):
        if extra not in dimensions:
            dimensions.append(extra)
    return dimensions


def role_specialization_block(role: str, domain: str) -> str:
    definition = COMMITTEE_ROLES[role]
    addendum = DOMAIN_ROLE_ADDENDA.get(domain, {}).get(
        role, "Domain emphasis: apply the role lens while staying evidence-constrained."
    )
    instructions = "\n".join(f"{i}. {item}" for i, item in enumerate(definition.instructions, start=1))
    return (
        "ROLE SPECIALIZATION:\n"
        f"Role: {definition.title}\n"
        f"Objective: {definition.objective}\n"
        f"Primary dimensions: {', '.join(role_dimensions(role, domain))}\n"
        f"Weight in committee aggregation: {definition.weight}\n"
        f"Domain routing: classifier={domain}, rubric_profile={map_domain_to_rubric_profile(domain)}\n"
        f"{addendum}\n\n"
        f"Execution instructions:\n{instructions}"
    )


def _dimension_scores(raw: Any, keys: tuple) -> Dict[str, float]:
    scores: Dict[str, float] = {}
    if not isinstance(raw, dict):
        return scores
    for key in keys:
        value = to_number(raw.get(key))
        if value is not None:
            scores[key] = clamp(value, 0.0, 10.0)
    return scores


def _verdict(raw: Any, allowed: tuple, default: str) -> str:
    text = str(raw or "").strip().upper()
    return text if text in allowed else default


@dataclass
class BearOpinion:
    risk_score: float
    verdict: str
    fatal_flaws: List[str] = field(default_factory=list)
    roast: str = ""
    dimension_scores: Dict[str, float] = field(default_factory=dict)
    rubric_scores: Dict[str, float] = field(default_factory=dict)

    @staticmethod
    def from_payload(payload: Dict[str, Any]) -> "BearOpinion":
        body = payload.get("bear_analysis")
        if not isinstance(body, dict):
            raise SchemaError("Bear response is missing bear_analysis")
        risk = to_number(body.get("risk_score"))
        if risk is None:
            raise SchemaError("Bear response has no numeric risk_score")
        return BearOpinion(
            risk_score=clamp(risk),
            verdict=_verdict(body.get("verdict"), BEAR_VERDICTS, "AVOID"),
            fatal_flaws=to_str_list(body.get("fatal_flaws")),
            roast=str(body.get("roast", "")),
            dimension_scores=_dimension_scores(
                payload.get("dimension_scores"), COMMITTEE_ROLES["bear"].primary_dimensions
            ),
            rubric_scores=_dimension_scores(payload.get("rubric_scores"), RUBRIC_DIMENSIONS),
        )


@dataclass
class BullOpinion:
    upside_score: float
    verdict: str
    alpha_signals: List[str] = field(default_factory=list)
    pitch: str = ""
    dimension_scores: Dict[str, float] = field(default_factory=dict)
    rubric_scores: Dict[str, float] = field(default_factory=dict)

    @staticmethod
    def from_payload(payload: Dict[str, Any]) -> "BullOpinion":
        body = payload.get("bull_analysis")
        if not isinstance(body, dict):
            raise SchemaError("Bull response is missing bull_analysis")
        upside = to_number(body.get("upside_score"))
        if upside is None:
            raise SchemaError("Bull response has no numeric upside_score")
        return BullOpinion(
            upside_score=clamp(upside),
            verdict=_verdict(body.get("verdict"), BULL_VERDICTS, "LONG"),
            alpha_signals=to_str_list(body.get("alpha_signals")),
            pitch=str(body.get("pitch", "")),
            dimension_scores=_dimension_scores(
                payload.get("dimension_scores"), COMMITTEE_ROLES["bull"].primary_dimensions
            ),
            rubric_scores=_dimension_scores(payload.get("rubric_scores"), RUBRIC_DIMENSIONS),
        )


@dataclass
class AnalystCall:
    role: str
    opinion: Optional[Any] = None
    model: Optional[str] = None
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.opinion is None
