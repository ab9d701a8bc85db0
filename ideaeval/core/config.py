from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
import tomllib


@dataclass
class SourceConfig:
    enabled: bool = True
    base_url: str | None = None
    timeout_seconds: int = 20
    max_retries: int = 3
    cache_ttl_seconds: int = 300
    ttl_hours: float = 24.0


@dataclass
class ModelsConfig:
    provider: str = "openrouter"
    bear: str = "openai/gpt-5-mini"
    bull: str = "openai/gpt-5-mini"
    judge: str = "openai/gpt-5"
    judge_fallback: str = "anthropic/claude-sonnet-4.5"
    repair: str | None = "openai/gpt-5-mini"
    temperature: float = 0.4
    max_tokens: int = 4000


@dataclass
class TimeoutsConfig:
    analyst_seconds: float = 25.0
    judge_seconds: float = 60.0
    repair_seconds: float = 45.0
    grounding_seconds: float = 15.0


@dataclass
class VerifierConfig:
    max_repairs: int = 2
    claim_tolerance: float = 0.25


@dataclass
class CommitteeConfig:
    bear_weight: float = 0.3
    bull_weight: float = 0.3
    judge_weight: float = 0.4
    apply_weighting: bool = True
    disagreement_threshold: float = 20.0

    @property
    def weights(self) -> dict[str, float]:
        return {"bear": self.bear_weight, "bull": self.bull_weight, "judge": self.judge_weight}


@dataclass
class ConfidenceConfig:
    baseline: float = 70.0
    high_coverage_bonus: float = 15.0
    moderate_coverage_bonus: float = 5.0
    low_coverage_penalty: float = 15.0
    fallback_penalty: float = 10.0
    no_external_data_penalty: float = 20.0
    agent_failure_penalty: float = 5.0
    agent_failure_cap: float = 15.0
    freshness_weight: float = 30.0
    contradiction_penalty: float = 10.0
    disagreement_multiplier: float = 0.85
    high_threshold: float = 75.0
    medium_threshold: float = 45.0


@dataclass
class EvaluatorConfig:
    dry_run_default: bool = False
    grounding_enabled: bool = True
    models: ModelsConfig = field(default_factory=ModelsConfig)
    timeouts: TimeoutsConfig = field(default_factory=TimeoutsConfig)
    verifier: VerifierConfig = field(default_factory=VerifierConfig)
    committee: CommitteeConfig = field(default_factory=CommitteeConfig)
    confidence: ConfidenceConfig = field(default_factory=ConfidenceConfig)
    sources: dict[str, SourceConfig] = field(default_factory=dict)
    domain_keywords: dict[str, list[str]] = field(default_factory=dict)


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key, {})
    if not isinstance(value, dict):
        return {}
    return value


def load_config(path: str = "evaluator.toml") -> EvaluatorConfig:
    cfg_path = Path(path)
    if not cfg_path.exists():
        return EvaluatorConfig()

    with cfg_path.open("rb") as f:
        raw = tomllib.load(f)

    sources_raw = _section(raw, "sources")
    sources = {
        name: SourceConfig(**values)
        for name, values in sources_raw.items()
        if isinstance(values, dict)
    }

    return EvaluatorConfig(
        dry_run_default=bool(raw.get("dry_run_default", False)),
        grounding_enabled=bool(raw.get("grounding_enabled", True)),
        models=ModelsConfig(**_section(raw, "models")),
        timeouts=TimeoutsConfig(**_section(raw, "timeouts")),
        verifier=VerifierConfig(**_section(raw, "verifier")),
        committee=CommitteeConfig(**_section(raw, "committee")),
        confidence=ConfidenceConfig(**_section(raw, "confidence")),
        sources=sources,
        domain_keywords={
            str(k): list(v) for k, v in _section(raw, "domain_keywords").items()
        },
    )
