import asyncio
import json

import pytest

from committee.agent.analysts import run_analysts, run_bear, run_bull
from committee.agent.roles import RUBRIC_DIMENSIONS
from committee.agent.router import EvaluationCancelled
from committee.agent.utils import DryRunCapability
from ideaeval.core.schemas import Submission

SUBMISSION = Submission(
    description="Lending protocol that offers undercollateralized loans to DAO treasuries.",
    domain_hint="defi",
)


class ScriptedCapability:
    def __init__(self, model: str, response: str = "", error: Exception | None = None):
        self.model = model
        self.response = response
        self.error = error
        self.prompts: list[str] = []

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.response


def test_bear_response_is_parsed() -> None:
    payload = {
        "bear_analysis": {"risk_score": 82, "verdict": "Kill", "fatal_flaws": ["No collateral"], "roast": "Bold."},
        "dimension_scores": {"technical_feasibility": 4, "regulatory_risk": 12},
        "rubric_scores": {"market_opportunity": 5, "competitive_moat": "3"},
    }
    capability = ScriptedCapability("bear-model", "```json\n" + json.dumps(payload) + "\n```")
    call = asyncio.run(run_bear(SUBMISSION, "crypto_defi", capability, grounding_brief="GROUNDING BRIEF"))

    assert not call.failed
    assert call.model == "bear-model"
    assert call.opinion.risk_score == 82
    assert call.opinion.verdict == "KILL"
    assert call.opinion.fatal_flaws == ["No collateral"]
    assert call.opinion.dimension_scores == {"technical_feasibility": 4, "regulatory_risk": 10}
    assert call.opinion.rubric_scores == {"market_opportunity": 5, "competitive_moat": 3}

    prompt = capability.prompts[0]
    assert '"bear_analysis"' in prompt
    assert "GROUNDING BRIEF" in prompt
    assert "<submission_data>" in prompt
    assert "Domain calibration (DeFi)" in prompt


def test_bull_failure_is_captured_not_raised() -> None:
    capability = ScriptedCapability("bull-model", error=RuntimeError("rate limited"))
    call = asyncio.run(run_bull(SUBMISSION, "crypto_defi", capability))
    assert call.failed
    assert call.model == "bull-model"
    assert call.error == "rate limited"


def test_payload_without_role_key_counts_as_failure() -> None:
    capability = ScriptedCapability("bear-model", json.dumps({"overall_score": 60}))
    call = asyncio.run(run_bear(SUBMISSION, "crypto_defi", capability))
    assert call.failed
    assert "bear_analysis" in call.error


def test_missing_capability_is_reported() -> None:
    call = asyncio.run(run_bull(SUBMISSION, "crypto_defi", None))
    assert call.failed
    assert call.error == "no model configured"


def test_analysts_run_independently() -> None:
    bear = ScriptedCapability("bear-model", error=ValueError("boom"))
    bull = DryRunCapability("bull-model")
    bear_call, bull_call = asyncio.run(run_analysts(SUBMISSION, "crypto_defi", bear, bull))

    assert bear_call.failed
    assert not bull_call.failed
    assert '"bull_analysis"' not in bear.prompts[0]


def test_dry_run_analysts_fill_every_rubric_dimension() -> None:
    bear_call, bull_call = asyncio.run(
        run_analysts(SUBMISSION, "crypto_defi", DryRunCapability("b1"), DryRunCapability("b2"))
    )
    assert 30 <= bear_call.opinion.risk_score <= 75
    assert 40 <= bull_call.opinion.upside_score <= 85
    for call in (bear_call, bull_call):
        assert set(call.opinion.rubric_scores) == set(RUBRIC_DIMENSIONS)
        assert all(3 <= v <= 8 for v in call.opinion.rubric_scores.values())


def test_dry_run_is_deterministic() -> None:
    first = asyncio.run(run_bear(SUBMISSION, "crypto_defi", DryRunCapability()))
    second = asyncio.run(run_bear(SUBMISSION, "crypto_defi", DryRunCapability()))
    assert first.opinion == second.opinion


def test_cancellation_propagates_from_analysts() -> None:
    async def run():
        cancel = asyncio.Event()
        cancel.set()
        return await run_bear(SUBMISSION, "crypto_defi", DryRunCapability(), cancel=cancel)

    with pytest.raises(EvaluationCancelled):
        asyncio.run(run())
