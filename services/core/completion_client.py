"""
Completion Client - AI priority recommendations over an OpenAI-compatible API

Every failure mode (timeout, transport error, non-2xx, empty or non-JSON
reply) surfaces as UpstreamUnavailable; nothing here touches the store.
"""
import asyncio
import json
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from exceptions import UpstreamUnavailable
from logging_config import get_logger
from priority_config import (
    COMPLETION_API_BASE,
    COMPLETION_API_KEY,
    COMPLETION_MAX_TOKENS,
    COMPLETION_MODEL,
    COMPLETION_TEMPERATURE,
    COMPLETION_TIMEOUT_SECONDS,
)
from prompts import (
    INTENTION_SECTION,
    RECOMMENDER_PROMPT,
    RECOMMENDER_SYSTEM_PROMPT,
    WEEKEND_RULE,
    WORKDAY_RULE,
)
from schemas import ConversationalContext, RecommendationContext

logger = get_logger(__name__)

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


def _lines(items: List[Dict[str, Any]], fmt, empty: str) -> str:
    if not items:
        return empty
    return "\n".join(fmt(item) for item in items)


def _intention(context: RecommendationContext) -> str:
    if not isinstance(context, ConversationalContext):
        return ""

    details = []
    if context.energy_level:
        details.append(f"ENERGY LEVEL: {context.energy_level}")
    if context.time_available:
        details.append(f"TIME AVAILABLE: {context.time_available.replace('_', ' ')}")
    if context.focus_area:
        details.append(f"FOCUS AREA: {context.focus_area}")

    return INTENTION_SECTION.format(
        daily_intention=context.daily_intention,
        details="\n".join(details),
        energy_level=context.energy_level or "medium",
        time_available=(context.time_available or "full_day").replace("_", " "),
    )


def build_prompt(context: RecommendationContext) -> str:
    today = context.today or datetime.now(timezone.utc)
    weekend = today.weekday() >= 5

    return RECOMMENDER_PROMPT.format(
        day_of_week=today.strftime("%A"),
        day_kind=" - Weekend" if weekend else "",
        day_rule=WEEKEND_RULE if weekend else WORKDAY_RULE,
        intention=_intention(context),
        goals=_lines(
            context.goals,
            lambda g: f"- {g.get('title')} (priority {g.get('priority_level', '?')}/5)",
            "No active goals",
        ),
        projects=_lines(
            context.projects,
            lambda p: f"- [{p.get('id')}] {p.get('title')} ({p.get('category')}) - "
                      f"{p.get('current_points', 0)}/{p.get('target_points', 0)} points",
            "No active projects",
        ),
        tasks=_lines(
            context.tasks,
            lambda t: f"- [{t.get('id')}] {t.get('title')} ({t.get('category')}) - "
                      f"{t.get('points_value', 0)} points",
            "No active tasks",
        ),
        habits=_lines(
            context.habits,
            lambda h: f"- {h.get('title')} ({h.get('frequency', 'daily')})",
            "No habits tracked",
        ),
        completed=_lines(
            context.completed_projects + context.completed_tasks,
            lambda c: f"- {c.get('title')}",
            "Nothing recently completed",
        ),
        existing=_lines(
            context.existing_priorities,
            lambda p: f"- {p.get('title')} ({p.get('source')}) - score {p.get('score')}",
            "No existing priorities",
        ),
    )


def parse_candidates(content: Optional[str]) -> List[Dict[str, Any]]:
    """
    Extract the raw candidate list from a completion reply.

    Accepts a JSON array, an object with a "priorities" array, and either
    wrapped in a ```json fence.

    Raises:
        UpstreamUnavailable: empty, non-JSON, or wrong shape
    """
    if not content or not content.strip():
        raise UpstreamUnavailable("empty completion")

    text = content.strip()
    fenced = _FENCE_RE.match(text)
    if fenced:
        text = fenced.group(1)

    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        logger.warning("completion_not_json", preview=text[:200])
        raise UpstreamUnavailable("malformed completion: not JSON") from None

    if isinstance(payload, dict) and isinstance(payload.get("priorities"), list):
        payload = payload["priorities"]

    if not isinstance(payload, list):
        raise UpstreamUnavailable("malformed completion: expected a JSON array")

    return payload


class CompletionClient:
    """Chat-completions client with a hard timeout"""

    def __init__(
        self,
        base_url: str = COMPLETION_API_BASE,
        api_key: str = COMPLETION_API_KEY,
        model: str = COMPLETION_MODEL,
        timeout: float = COMPLETION_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self._transport = transport

    async def chat_completion(self, messages: list, **kwargs) -> Dict[str, Any]:
        url = f"{self.base_url}/chat/completions"
        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": COMPLETION_TEMPERATURE,
            "max_tokens": COMPLETION_MAX_TOKENS,
            **kwargs
        }
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}"
        }

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(url, json=payload, headers=headers)
            response.raise_for_status()
            return response.json()

    async def recommend(self, context: RecommendationContext) -> List[Dict[str, Any]]:
        """
        Ask for today's priorities. Returns raw (unvalidated) candidates.

        Raises:
            UpstreamUnavailable: timeout, HTTP failure or malformed reply
        """
        messages = [
            {"role": "system", "content": RECOMMENDER_SYSTEM_PROMPT},
            {"role": "user", "content": build_prompt(context)},
        ]

        try:
            result = await asyncio.wait_for(self.chat_completion(messages), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("completion_timeout", timeout=self.timeout)
            raise UpstreamUnavailable(f"timed out after {self.timeout}s") from None
        except httpx.HTTPStatusError as e:
            logger.warning(
                "completion_http_error",
                status_code=e.response.status_code,
                body=e.response.text[:200],
            )
            raise UpstreamUnavailable(f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.warning("completion_transport_error", error=str(e))
            raise UpstreamUnavailable(f"transport error: {e.__class__.__name__}") from e
        except ValueError as e:
            # response.json() on a non-JSON body
            raise UpstreamUnavailable("malformed completion envelope") from e

        try:
            content = result["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            raise UpstreamUnavailable("malformed completion envelope") from None

        candidates = parse_candidates(content)
        logger.info("completion_received", model=result.get("model", self.model), candidates=len(candidates))
        return candidates
