import asyncio
import json

import pytest

from committee.agent.roles import AnalystCall, BearOpinion, BullOpinion
from committee.agent.router import (
    AllModelsFailedError,
    EvaluationCancelled,
    ModelRouter,
    parse_evaluation,
    synthesize,
)
from ideaeval.core.schemas import Submission

JUDGE_PAYLOAD = {
    "overall_score": 64,
    "summary": {"title": "Lending desk", "one_liner": "Undercollateralized loans.", "main_verdict": "Cautious build."},
    "technical": {"feasibility_score": 60, "key_risks": ["Oracle manipulation"], "comments": "Solid plan."},
    "market": {"market_fit_score": 58, "target_audience": ["DAO treasuries"], "competitor_signals": ["Maple"]},
    "recommendations": {"must_fix_before_build": ["Get an audit"]},
    "sub_scores": {"market_opportunity": 6, "technical_feasibility": 5},
}


class FakeCapability:
    def __init__(self, model: str, response: str = "", error: Exception | None = None, delay: float = 0.0):
        self.model = model
        self.response = response
        self.error = error
        self.delay = delay
        self.prompts: list[str] = []

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.response


def test_primary_success_never_calls_fallback() -> None:
    primary = FakeCapability("primary", json.dumps({"ok": True}))
    fallback = FakeCapability("fallback", json.dumps({"ok": False}))
    routed = asyncio.run(ModelRouter([primary, fallback]).complete("prompt"))
    assert routed.value == {"ok": True}
    assert routed.model == "primary"
    assert routed.fallback_used is False
    assert fallback.prompts == []


def test_primary_error_falls_back() -> None:
    primary = FakeCapability("primary", error=RuntimeError("503 overloaded"))
    fallback = FakeCapability("fallback", json.dumps({"ok": True}))
    routed = asyncio.run(ModelRouter([primary, fallback]).complete("prompt"))
    assert routed.model == "fallback"
    assert routed.fallback_used is True
    assert routed.errors == ["primary: 503 overloaded"]


def test_unparseable_primary_output_falls_back() -> None:
    primary = FakeCapability("primary", "I think this idea is great!")
    fallback = FakeCapability("fallback", "```json\n{\"ok\": true}\n```")
    routed = asyncio.run(ModelRouter([primary, fallback]).complete("prompt"))
    assert routed.value == {"ok": True}
    assert routed.fallback_used is True


def test_timeout_falls_back() -> None:
    primary = FakeCapability("primary", json.dumps({"ok": False}), delay=1.0)
    fallback = FakeCapability("fallback", json.dumps({"ok": True}))
    routed = asyncio.run(ModelRouter([primary, fallback], timeout_seconds=0.05).complete("prompt"))
    assert routed.model == "fallback"


def test_all_models_failing_raises() -> None:
    router = ModelRouter([FakeCapability("a", error=ValueError("x")), FakeCapability("b", "nope")])
    with pytest.raises(AllModelsFailedError) as info:
        asyncio.run(router.complete("prompt"))
    assert len(info.value.errors) == 2


def test_cancel_token_aborts_routing() -> None:
    async def run():
        cancel = asyncio.Event()
        cancel.set()
        return await ModelRouter([FakeCapability("a", "{}")]).complete("prompt", cancel=cancel)

    with pytest.raises(EvaluationCancelled):
        asyncio.run(run())


def test_cancel_during_call_aborts() -> None:
    async def run():
        cancel = asyncio.Event()
        slow = FakeCapability("slow", "{}", delay=5.0)
        asyncio.get_running_loop().call_later(0.05, cancel.set)
        return await ModelRouter([slow], timeout_seconds=10).complete("prompt", cancel=cancel)

    with pytest.raises(EvaluationCancelled):
        asyncio.run(run())


def test_router_requires_a_capability() -> None:
    with pytest.raises(ValueError):
        ModelRouter([None])


def _analysts() -> tuple[AnalystCall, AnalystCall]:
    bear = BearOpinion.from_payload(
        {"bear_analysis": {"risk_score": 70, "verdict": "kill", "fatal_flaws": ["Oracle risk"], "roast": "Yikes."}}
    )
    bull = BullOpinion.from_payload(
        {"bull_analysis": {"upside_score": 75, "verdict": "LONG", "alpha_signals": ["DAO demand"], "pitch": "Real demand."}}
    )
    return AnalystCall("bear", bear, "m-bear"), AnalystCall("bull", bull, "m-bull")


def test_synthesize_references_both_perspectives() -> None:
    judge = FakeCapability("judge", json.dumps(JUDGE_PAYLOAD))
    bear_call, bull_call = _analysts()
    outcome = asyncio.run(
        synthesize(
            Submission(description="Undercollateralized lending for DAOs."),
            bear_call,
            bull_call,
            "GROUNDING BRIEF",
            "crypto_defi",
            ModelRouter([judge]),
        )
    )
    assert outcome.model == "judge"
    assert outcome.fallback_used is False
    result = outcome.result
    assert result.overall_score == 64
    assert result.reasoning_steps[0].startswith("Reviewing Bear Case")
    assert result.reasoning_steps[1].startswith("Reviewing Bull Case")
    assert "[COMMITTEE LOG]" in result.technical.comments
    assert "Bear Verdict: KILL" in result.technical.comments
    assert "Bull Verdict: LONG" in result.technical.comments

    prompt = judge.prompts[0]
    assert "BEAR REPORT" in prompt and "BULL REPORT" in prompt
    assert "Oracle risk" in prompt
    assert '"bear_analysis"' not in prompt


def test_synthesize_notes_missing_analyst() -> None:
    judge = FakeCapability("judge", json.dumps(JUDGE_PAYLOAD))
    _, bull_call = _analysts()
    failed_bear = AnalystCall("bear", model="m-bear", error="timed out")
    outcome = asyncio.run(
        synthesize(Submission(description="x"), failed_bear, bull_call, "", "other", ModelRouter([judge]))
    )
    assert "unavailable (timed out)" in outcome.result.technical.comments
    assert "UNAVAILABLE" in judge.prompts[0]


def test_parse_evaluation_keeps_out_of_range_scores() -> None:
    result = parse_evaluation(json.dumps({**JUDGE_PAYLOAD, "overall_score": -5}))
    assert result.overall_score == -5
