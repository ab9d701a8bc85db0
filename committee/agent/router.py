import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence

from committee.agent.prompts import build_judge_prompt
from committee.agent.roles import AnalystCall
from committee.agent.utils import Capability, extract_json_from_response
from ideaeval.core.schemas import EvaluationResult, Submission

logger = logging.getLogger(__name__)


class AllModelsFailedError(RuntimeError):
    """Every capability in a route failed, timed out or returned unparseable output."""

    def __init__(self, errors: List[str]):
        super().__init__("All models failed: " + "; ".join(errors))
        self.errors = errors


class EvaluationCancelled(RuntimeError):
    """The caller's cancel token was set while a model call was in flight."""


async def call_capability(
    capability: Capability,
    prompt: str,
    timeout_seconds: float,
    cancel: Optional[asyncio.Event] = None,
) -> str:
    """Await one completion, bounded by a timeout and an optional cancel token."""
    if cancel is None:
        return await asyncio.wait_for(capability.complete(prompt), timeout=timeout_seconds)
    if cancel.is_set():
        raise EvaluationCancelled(f"Cancelled before calling {capability.model}")

    call = asyncio.ensure_future(capability.complete(prompt))
    stop = asyncio.ensure_future(cancel.wait())
    try:
        done, _ = await asyncio.wait(
            {call, stop}, timeout=timeout_seconds, return_when=asyncio.FIRST_COMPLETED
        )
    finally:
        for task in (call, stop):
            if not task.done():
                task.cancel()
    if call in done:
        return call.result()
    if stop in done:
        raise EvaluationCancelled(f"Cancelled while waiting on {capability.model}")
    raise asyncio.TimeoutError(f"{capability.model} timed out after {timeout_seconds:g}s")


@dataclass
class RoutedCompletion:
    value: Any
    model: str
    fallback_used: bool
    errors: List[str] = field(default_factory=list)


class ModelRouter:
    """Ordered retry over capabilities: primary first, the next only after a failure."""

    def __init__(self, capabilities: Sequence[Optional[Capability]], timeout_seconds: float = 60.0):
        self.capabilities = [c for c in capabilities if c is not None]
        if not self.capabilities:
            raise ValueError("ModelRouter needs at least one capability")
        self.timeout_seconds = timeout_seconds

    @property
    def models(self) -> List[str]:
        return [c.model for c in self.capabilities]

    async def complete(
        self,
        prompt: str,
        parse: Callable[[str], Any] = extract_json_from_response,
        cancel: Optional[asyncio.Event] = None,
    ) -> RoutedCompletion:
        errors: List[str] = []
        for index, capability in enumerate(self.capabilities):
            try:
                text = await call_capability(capability, prompt, self.timeout_seconds, cancel)
                value = parse(text)
            except EvaluationCancelled:
                raise
            except Exception as exc:
                reason = str(exc) or type(exc).__name__
                logger.warning(f"Model {capability.model} failed: {reason}")
                errors.append(f"{capability.model}: {reason}")
                continue
            if index > 0:
                logger.warning(f"Fallback model {capability.model} answered after {index} failure(s)")
            return RoutedCompletion(value=value, model=capability.model, fallback_used=index > 0, errors=errors)
        raise AllModelsFailedError(errors)


@dataclass
class JudgeOutcome:
    result: EvaluationResult
    fallback_used: bool
    model: str
    errors: List[str] = field(default_factory=list)


def parse_evaluation(text: str) -> EvaluationResult:
    return EvaluationResult.from_payload(extract_json_from_response(text))


def committee_log(bear_call: AnalystCall, bull_call: AnalystCall) -> str:
    if bear_call.opinion is not None:
        bear = f'Bear Verdict: {bear_call.opinion.verdict} ("{bear_call.opinion.roast}")'
    else:
        bear = f"Bear Verdict: unavailable ({bear_call.error or 'no response'})"
    if bull_call.opinion is not None:
        bull = f'Bull Verdict: {bull_call.opinion.verdict} ("{bull_call.opinion.pitch}")'
    else:
        bull = f"Bull Verdict: unavailable ({bull_call.error or 'no response'})"
    return f"[COMMITTEE LOG]\n{bear}\n{bull}"


def _ensure_perspectives(result: EvaluationResult, bear_call: AnalystCall, bull_call: AnalystCall) -> None:
    steps = list(result.reasoning_steps)
    if not any(step.startswith("Reviewing Bull Case") for step in steps):
        pitch = bull_call.opinion.pitch if bull_call.opinion is not None else "analysis unavailable"
        steps.insert(0, f"Reviewing Bull Case: {pitch}")
    if not any(step.startswith("Reviewing Bear Case") for step in steps):
        roast = bear_call.opinion.roast if bear_call.opinion is not None else "analysis unavailable"
        steps.insert(0, f"Reviewing Bear Case: {roast}")
    result.reasoning_steps = steps

    log = committee_log(bear_call, bull_call)
    comments = result.technical.comments.strip()
    result.technical.comments = f"{comments}\n\n{log}" if comments else log


async def synthesize(
    submission: Submission,
    bear_call: AnalystCall,
    bull_call: AnalystCall,
    grounding_brief: str,
    domain: str,
    router: ModelRouter,
    cancel: Optional[asyncio.Event] = None,
    staleness_note: str = "",
) -> JudgeOutcome:
    """Ask the judge route for one verdict that reconciles both analysts.

    Raises:
        AllModelsFailedError: primary and fallback judges both failed
        EvaluationCancelled: the cancel token fired mid-call
    """
    prompt = build_judge_prompt(
        submission,
        domain,
        grounding_brief,
        bear_call.opinion,
        bull_call.opinion,
        staleness=staleness_note,
    )
    logger.info(f"Judge deliberating with route {router.models}")
    routed = await router.complete(prompt, parse=parse_evaluation, cancel=cancel)
    result: EvaluationResult = routed.value
    _ensure_perspectives(result, bear_call, bull_call)
    return JudgeOutcome(
        result=result,
        fallback_used=routed.fallback_used,
        model=routed.model,
        errors=routed.errors,
    )
