import asyncio
import logging
from typing import Optional, Tuple

from committee.agent.prompts import build_bear_prompt, build_bull_prompt
from committee.agent.roles import AnalystCall, BearOpinion, BullOpinion
from committee.agent.router import EvaluationCancelled, call_capability
from committee.agent.utils import Capability, extract_json_from_response
from ideaeval.core.schemas import Submission

logger = logging.getLogger(__name__)

DEFAULT_ANALYST_TIMEOUT = 25.0


async def _run_role(
    role: str,
    parser,
    capability: Optional[Capability],
    prompt: str,
    timeout_seconds: float,
    cancel: Optional[asyncio.Event],
) -> AnalystCall:
    if capability is None:
        return AnalystCall(role=role, error="no model configured")
    try:
        text = await call_capability(capability, prompt, timeout_seconds, cancel)
        opinion = parser(extract_json_from_response(text))
    except EvaluationCancelled:
        raise
    except Exception as exc:
        reason = str(exc) or type(exc).__name__
        logger.warning(f"{role.capitalize()} analyst ({capability.model}) failed: {reason}")
        return AnalystCall(role=role, model=capability.model, error=reason)
    logger.info(f"{role.capitalize()} analyst ({capability.model}) verdict: {opinion.verdict}")
    return AnalystCall(role=role, opinion=opinion, model=capability.model)


async def run_bear(
    submission: Submission,
    domain: str,
    capability: Optional[Capability],
    grounding_brief: str = "",
    staleness_note: str = "",
    timeout_seconds: float = DEFAULT_ANALYST_TIMEOUT,
    cancel: Optional[asyncio.Event] = None,
) -> AnalystCall:
    prompt = build_bear_prompt(submission, domain, grounding_brief, staleness_note)
    return await _run_role("bear", BearOpinion.from_payload, capability, prompt, timeout_seconds, cancel)


async def run_bull(
    submission: Submission,
    domain: str,
    capability: Optional[Capability],
    grounding_brief: str = "",
    staleness_note: str = "",
    timeout_seconds: float = DEFAULT_ANALYST_TIMEOUT,
    cancel: Optional[asyncio.Event] = None,
) -> AnalystCall:
    prompt = build_bull_prompt(submission, domain, grounding_brief, staleness_note)
    return await _run_role("bull", BullOpinion.from_payload, capability, prompt, timeout_seconds, cancel)


async def run_analysts(
    submission: Submission,
    domain: str,
    bear: Optional[Capability],
    bull: Optional[Capability],
    grounding_brief: str = "",
    staleness_note: str = "",
    timeout_seconds: float = DEFAULT_ANALYST_TIMEOUT,
    cancel: Optional[asyncio.Event] = None,
) -> Tuple[AnalystCall, AnalystCall]:
    """Run the Bear and Bull concurrently; neither branch sees the other's output."""
    bear_call, bull_call = await asyncio.gather(
        run_bear(submission, domain, bear, grounding_brief, staleness_note, timeout_seconds, cancel),
        run_bull(submission, domain, bull, grounding_brief, staleness_note, timeout_seconds, cancel),
    )
    return bear_call, bull_call
