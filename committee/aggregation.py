from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np

from ideaeval.core.schemas import DisagreementMetrics
from ideaeval.core.utils import clamp

DEFAULT_WEIGHTS = {"bear": 0.3, "bull": 0.3, "judge": 0.4}
DEFAULT_DISAGREEMENT_THRESHOLD = 20.0


@dataclass
class WeightedCommitteeScore:
    weighted_score: float
    inputs: Dict[str, float] = field(default_factory=dict)
    weights_used: Dict[str, float] = field(default_factory=dict)


def committee_overall_scores(
    bear_risk: Optional[float],
    bull_upside: Optional[float],
    judge_score: Optional[float],
) -> Dict[str, float]:
    """Put every committee member on the judge's 0-100 "higher is better" scale.

    The bear reports risk, so its equivalent overall score is 100 - risk.
    """
    scores: Dict[str, float] = {}
    if bear_risk is not None:
        scores["bear"] = 100.0 - clamp(float(bear_risk))
    if bull_upside is not None:
        scores["bull"] = clamp(float(bull_upside))
    if judge_score is not None:
        scores["judge"] = clamp(float(judge_score))
    return scores


def compute_weighted_committee_score(
    bear_risk: Optional[float],
    bull_upside: Optional[float],
    judge_score: Optional[float],
    weights: Optional[Dict[str, float]] = None,
) -> WeightedCommitteeScore:
    weights = weights or DEFAULT_WEIGHTS
    scores = committee_overall_scores(bear_risk, bull_upside, judge_score)
    used = {role: float(weights.get(role, 0.0)) for role in scores if weights.get(role, 0.0) > 0}
    total = sum(used.values())
    if total <= 0:
        fallback = scores.get("judge", scores.get("bull", scores.get("bear", 50.0)))
        return WeightedCommitteeScore(weighted_score=round(fallback, 1), inputs=scores)
    weighted = sum(scores[role] * weight for role, weight in used.items()) / total
    return WeightedCommitteeScore(
        weighted_score=round(clamp(weighted), 1),
        inputs=scores,
        weights_used=used,
    )


def compute_dispersion(values: List[float]) -> float:
    if len(values) < 2:
        return 0.0
    return float(np.std(np.asarray(values, dtype=float), ddof=0))


def compute_committee_disagreement(
    overall_scores: Dict[str, float],
    per_dimension_scores: Optional[Dict[str, List[float]]] = None,
    threshold: float = DEFAULT_DISAGREEMENT_THRESHOLD,
) -> DisagreementMetrics:
    """Population standard deviation of committee scores on the 0-100 scale.

    ``per_dimension_scores`` maps a rubric dimension to the 0-10 sub-scores
    each agent gave it; the spread per dimension points at what the agents
    actually disagreed about.
    """
    values = [clamp(float(v)) for v in overall_scores.values() if v is not None]
    std_dev = compute_dispersion(values)
    variance = std_dev ** 2

    dimensional: Dict[str, float] = {}
    for dimension, raw in (per_dimension_scores or {}).items():
        cleaned = [clamp(float(v), 0.0, 10.0) for v in raw if v is not None]
        if len(cleaned) < 2:
            continue
        dimensional[dimension] = round(compute_dispersion(cleaned), 2)

    top = max(dimensional.items(), key=lambda item: item[1]) if dimensional else None
    if top is not None:
        note = (
            f"Agents disagreed most on {top[0]} (sigma {top[1]:.2f}/10). "
            f"Overall score sigma: {std_dev:.2f}."
        )
    else:
        note = f"Overall score sigma: {std_dev:.2f} across {len(values)} agent score(s)."

    return DisagreementMetrics(
        compared_agents=len(values),
        overall_score_std_dev=round(std_dev, 3),
        overall_score_variance=round(variance, 3),
        high_disagreement_flag=std_dev > threshold,
        dimensional_disagreement=dimensional,
        top_disagreement_dimension=top[0] if top else None,
        disagreement_note=note,
    )
