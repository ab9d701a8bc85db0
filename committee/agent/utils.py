import os
import json
import logging
from typing import Optional, Protocol

import httpx
import openai

from ideaeval.core.utils import stable_hash

# Set up logging
logger = logging.getLogger(__name__)

OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"


class Capability(Protocol):
    """Anything that turns a prompt into (ideally JSON) text."""

    model: str

    async def complete(self, prompt: str) -> str:
        ...


def clean_indents(text: str) -> str:
    """Remove common indentation from a multi-line string."""
    lines = text.split('\n')
    min_indent = min(
        (len(line) - len(line.lstrip()) for line in lines if line.strip()),
        default=0,
    )
    return '\n'.join(line[min_indent:] for line in lines).strip()


def extract_json_from_response(response_text: str) -> dict:
    """Robust JSON extraction from LLM responses.

    Handles:
    - Markdown code fences (```json, ```)
    - Extra commentary before/after JSON

    Raises:
        json.JSONDecodeError: If no JSON object can be extracted
    """
    text = response_text.strip()
    if text.startswith("```json"):
        text = text[7:]
    if text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]
    text = text.strip()

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as first_error:
        logger.warning("Direct JSON parse failed, attempting substring extraction")
        logger.debug(f"Raw response (first 500 chars): {response_text[:500]}")
        try:
            start = text.index("{")
            end = text.rindex("}") + 1
            parsed = json.loads(text[start:end])
        except (ValueError, json.JSONDecodeError):
            logger.error("JSON extraction failed completely")
            raise first_error
    if not isinstance(parsed, dict):
        raise json.JSONDecodeError("Top-level JSON value is not an object", text, 0)
    return parsed


def _sanitize_header(value: str) -> str:
    """HTTP headers must be latin-1 encodable."""
    return value.encode('ascii', 'ignore').decode('ascii')


async def call_openrouter_llm(
    prompt: str,
    model: str,
    temperature: float = 0.4,
    max_tokens: int = 4000,
    json_mode: bool = True,
    timeout: float = 120.0,
) -> str:
    """Call the OpenRouter chat completions API.

    Raises:
        ValueError: If OPENROUTER_API_KEY is not set or the model returns nothing
        httpx.HTTPStatusError: On non-2xx responses
    """
    api_key = os.getenv("OPENROUTER_API_KEY")
    if not api_key:
        raise ValueError("OPENROUTER_API_KEY not found in environment")

    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
        "HTTP-Referer": _sanitize_header(os.getenv("OPENROUTER_SITE_URL", "https://github.com/idea-committee")),
        "X-Title": _sanitize_header(os.getenv("OPENROUTER_SITE_NAME", "Idea Committee")),
    }
    payload = {
        "model": model,
        "messages": [{"role": "user", "content": prompt}],
        "temperature": temperature,
        "max_tokens": max_tokens,
    }
    if json_mode:
        payload["response_format"] = {"type": "json_object"}

    logger.info(f"Calling OpenRouter with model: {model}")
    async with httpx.AsyncClient(timeout=timeout) as client:
        response = await client.post(OPENROUTER_URL, headers=headers, json=payload)

    try:
        response.raise_for_status()
    except httpx.HTTPStatusError:
        logger.error(f"OpenRouter API error ({response.status_code}): {response.text[:500]}")
        raise

    result = response.json()
    choices = result.get("choices") or []
    if not choices:
        raise ValueError(f"Unexpected OpenRouter response format: {str(result)[:300]}")

    message = choices[0].get("message", {}) or {}
    content = (message.get("content") or "").strip()
    usage = result.get("usage") or {}
    if usage:
        logger.info(
            f"OpenRouter usage for {model}: prompt={usage.get('prompt_tokens', 0)}, "
            f"completion={usage.get('completion_tokens', 0)}, total={usage.get('total_tokens', 0)}"
        )
    if not content:
        raise ValueError(f"Empty response from model {model}")
    logger.info(f"OpenRouter response received ({len(content)} chars)")
    return content


_openai_client: Optional[openai.AsyncOpenAI] = None


def get_openai_client() -> openai.AsyncOpenAI:
    global _openai_client
    if _openai_client is None:
        api_key = os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise ValueError("OPENAI_API_KEY not found in environment")
        _openai_client = openai.AsyncOpenAI(api_key=api_key)
    return _openai_client


async def call_openai_llm(
    prompt: str,
    model: str,
    temperature: float = 0.4,
    max_tokens: int = 4000,
    json_mode: bool = True,
) -> str:
    """Call OpenAI directly through the async SDK."""
    kwargs = {
        "model": model,
        "messages": [{"role": "user", "content": prompt}],
        "temperature": temperature,
        "max_tokens": max_tokens,
    }
    if json_mode:
        kwargs["response_format"] = {"type": "json_object"}

    logger.info(f"Calling OpenAI with model: {model}")
    response = await get_openai_client().chat.completions.create(**kwargs)
    content = (response.choices[0].message.content or "").strip() if response.choices else ""
    if response.usage is not None:
        logger.info(
            f"OpenAI usage for {model}: prompt={response.usage.prompt_tokens}, "
            f"completion={response.usage.completion_tokens}"
        )
    if not content:
        raise ValueError(f"Empty response from model {model}")
    return content


class LLMCapability:
    """A named model behind one provider."""

    def __init__(
        self,
        model: str,
        provider: str = "openrouter",
        temperature: float = 0.4,
        max_tokens: int = 4000,
    ):
        if provider not in ("openrouter", "openai"):
            raise ValueError(f"Unknown model provider: {provider}")
        self.model = model
        self.provider = provider
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def complete(self, prompt: str) -> str:
        if self.provider == "openai":
            return await call_openai_llm(prompt, self.model, self.temperature, self.max_tokens)
        return await call_openrouter_llm(prompt, self.model, self.temperature, self.max_tokens)

    def __repr__(self) -> str:
        return f"LLMCapability({self.provider}:{self.model})"


class DryRunCapability:
    """Deterministic offline stand-in: hash-seeded JSON shaped for the calling role."""

    def __init__(self, model: str = "dry-run"):
        self.model = model

    def _bucket(self, prompt: str, salt: str, low: int, high: int) -> int:
        h = stable_hash(salt + "|" + prompt)
        return low + int(h[:8], 16) % (high - low + 1)

    def _rubric(self, prompt: str, salt: str) -> dict:
        return {
            key: self._bucket(prompt, f"{salt}:{key}", 3, 8)
            for key in ("market_opportunity", "technical_feasibility", "competitive_moat", "execution_readiness")
        }

    async def complete(self, prompt: str) -> str:
        if '"bear_analysis"' in prompt:
            payload = {
                "bear_analysis": {
                    "risk_score": self._bucket(prompt, "risk", 30, 75),
                    "verdict": "SHORT",
                    "fatal_flaws": ["Dry run: no live model consulted."],
                    "roast": "Dry run output.",
                },
                "dimension_scores": {
                    "technical_feasibility": self._bucket(prompt, "tf", 3, 8),
                    "failure_modes": self._bucket(prompt, "fm", 3, 8),
                    "competitive_threats": self._bucket(prompt, "ct", 3, 8),
                    "regulatory_risk": self._bucket(prompt, "rr", 3, 8),
                },
                "rubric_scores": self._rubric(prompt, "bear"),
            }
        elif '"bull_analysis"' in prompt:
            payload = {
                "bull_analysis": {
                    "upside_score": self._bucket(prompt, "upside", 40, 85),
                    "verdict": "LONG",
                    "alpha_signals": ["Dry run: no live model consulted."],
                    "pitch": "Dry run output.",
                },
                "dimension_scores": {
                    "market_opportunity": self._bucket(prompt, "mo", 4, 9),
                    "growth_trajectory": self._bucket(prompt, "gt", 4, 9),
                    "customer_demand": self._bucket(prompt, "cd", 4, 9),
                    "timing_window": self._bucket(prompt, "tw", 4, 9),
                },
                "rubric_scores": self._rubric(prompt, "bull"),
            }
        else:
            score = self._bucket(prompt, "overall", 35, 75)
            payload = {
                "overall_score": score,
                "summary": {
                    "title": "Dry run evaluation",
                    "one_liner": "Deterministic placeholder produced without a live model.",
                    "main_verdict": "Watchlist: dry run verdict.",
                },
                "technical": {
                    "feasibility_score": self._bucket(prompt, "feas", 40, 80),
                    "key_risks": ["Dry run: risks not assessed."],
                    "required_components": ["MVP"],
                    "comments": "Bear and Bull cases were reviewed in dry run mode.",
                },
                "tokenomics": {"token_needed": False, "design_score": 50, "main_issues": [], "suggestions": []},
                "market": {
                    "market_fit_score": self._bucket(prompt, "fit", 40, 80),
                    "target_audience": ["Early adopters"],
                    "competitor_signals": ["Dry run: competitors not researched."],
                    "go_to_market_risks": [],
                },
                "execution": {
                    "complexity_level": "medium",
                    "founder_readiness_flags": [],
                    "estimated_timeline": "3-6 months",
                    "execution_risk_score": 55,
                    "execution_risk_label": "medium",
                    "execution_signals": [],
                },
                "recommendations": {
                    "must_fix_before_build": ["Run a live evaluation."],
                    "recommended_pivots": [],
                    "nice_to_have_later": [],
                },
                "launch_readiness_score": 50,
                "launch_readiness_label": "medium",
                "launch_readiness_signals": ["mvp prototype planned"],
                "sub_scores": self._rubric(prompt, "judge"),
                "reasoning_steps": [
                    "Reviewing Bear Case: dry run.",
                    "Reviewing Bull Case: dry run.",
                    "Synthesizing final verdict...",
                ],
            }
        return json.dumps(payload)


def build_capability(
    model: Optional[str],
    provider: str = "openrouter",
    temperature: float = 0.4,
    max_tokens: int = 4000,
    dry_run: bool = False,
) -> Optional[Capability]:
    if not model:
        return None
    if dry_run:
        return DryRunCapability(model=f"dry-run:{model}")
    return LLMCapability(model, provider=provider, temperature=temperature, max_tokens=max_tokens)
