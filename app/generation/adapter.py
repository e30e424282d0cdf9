"""
Generator Adapter

Invokes an external AI content agent over its JSON-RPC 2.0 ``message/send``
protocol and returns a normalized GenerationResult, or raises
TransientGenerationError / PermanentGenerationError.

Agent credentials stay inside this module: callers only ever see the
agent's public identifier.
"""
import json
import re
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, Field, ValidationError as SchemaError

from ..database import utcnow
from ..errors import ConfigurationError, PermanentGenerationError, TransientGenerationError
from ..logging_config import generation_logger as logger, timed
from ..models.agent import Agent

# JSON-RPC error codes the agent uses for temporary conditions.
RETRYABLE_RPC_CODES = {-32603, -32000, -32002, -32003}

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


class GenerationResult(BaseModel):
    """Normalized agent output."""
    title: str = Field(min_length=1)
    summary: str = ""
    content_markdown: str = Field(min_length=1)
    tags: List[str] = []
    cover_image_url: Optional[str] = None
    estimated_read_time_minutes: Optional[int] = None
    suggested_slug: Optional[str] = None


@dataclass(frozen=True)
class AgentTarget:
    id: int
    agent_id: str
    endpoint: str
    api_key: str = field(repr=False)


def build_payload(prompt: str, theme_metadata: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "id": f"call-{uuid.uuid4().hex[:12]}",
        "method": "message/send",
        "params": {
            "id": f"task-{uuid.uuid4().hex[:12]}",
            "sessionId": f"blog-session-{uuid.uuid4().hex[:8]}",
            "message": {
                "role": "user",
                "parts": [{"type": "text", "text": prompt}],
            },
            "metadata": {"theme": theme_metadata},
        },
    }


def _text_part(parts) -> Optional[str]:
    if not isinstance(parts, list):
        return None
    for part in parts:
        if isinstance(part, dict) and part.get("type", "text") == "text" and isinstance(part.get("text"), str):
            return part["text"]
    return None


def extract_text(body: Dict[str, Any]) -> str:
    """Locate the reply text across the response shapes agents are known to use."""
    result = body.get("result")
    if isinstance(result, str):
        return result
    if not isinstance(result, dict):
        raise PermanentGenerationError("Agent response has no result")

    candidates = [
        _text_part(((result.get("status") or {}).get("message") or {}).get("parts")),
        _text_part((result.get("message") or {}).get("parts")),
    ]
    for artifact in result.get("artifacts") or []:
        if isinstance(artifact, dict):
            candidates.append(_text_part(artifact.get("parts")))
    response = result.get("response")
    if isinstance(response, dict) and isinstance(response.get("content"), str):
        candidates.append(response["content"])
    if isinstance(result.get("content"), str):
        candidates.append(result["content"])

    for text in candidates:
        if text:
            return text
    raise PermanentGenerationError("Agent response contains no text content")


def parse_agent_json(text: str) -> Dict[str, Any]:
    """Parse the post JSON, tolerating code fences and surrounding chatter."""
    cleaned = _FENCE.sub("", text.strip())
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        start, end = cleaned.find("{"), cleaned.rfind("}")
        if start == -1 or end <= start:
            raise PermanentGenerationError("Agent reply is not JSON")
        try:
            data = json.loads(cleaned[start:end + 1])
        except json.JSONDecodeError as e:
            raise PermanentGenerationError(f"Agent reply is not valid JSON: {e}")
    if not isinstance(data, dict):
        raise PermanentGenerationError("Agent reply JSON is not an object")
    return data


class GeneratorAdapter:
    """Selects an active agent and performs one generation call."""

    def __init__(
        self,
        session_factory,
        default_agent_id: Optional[str] = None,
        request_timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        now_fn=utcnow,
    ):
        self.session_factory = session_factory
        self.default_agent_id = default_agent_id
        self.request_timeout = request_timeout
        self.now_fn = now_fn
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.request_timeout,
                transport=self._transport,
                headers={"Content-Type": "application/json"},
            )
        return self._client

    async def aclose(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def select_agent(self) -> AgentTarget:
        """
        The configured default agent when active, otherwise the most recently
        used active agent.
        """
        with self.session_factory() as session:
            agent = None
            if self.default_agent_id:
                agent = (
                    session.query(Agent)
                    .filter(Agent.agent_id == self.default_agent_id, Agent.active.is_(True))
                    .first()
                )
            if agent is None:
                agent = (
                    session.query(Agent)
                    .filter(Agent.active.is_(True))
                    .order_by(Agent.last_used.is_(None), Agent.last_used.desc(), Agent.id)
                    .first()
                )
            if agent is None:
                raise ConfigurationError("No active generation agent configured")
            return AgentTarget(id=agent.id, agent_id=agent.agent_id, endpoint=agent.endpoint, api_key=agent.api_key)

    def _record_usage(self, agent_pk: int):
        # Single UPDATE so concurrent successes never lose an increment.
        with self.session_factory() as session:
            session.query(Agent).filter(Agent.id == agent_pk).update(
                {"usage_count": Agent.usage_count + 1, "last_used": self.now_fn()},
                synchronize_session=False,
            )
            session.commit()

    @timed(logger)
    async def generate(self, prompt: str, theme_metadata: Optional[Dict[str, Any]] = None) -> GenerationResult:
        agent = self.select_agent()
        payload = build_payload(prompt, theme_metadata or {})
        client = await self._get_client()

        logger.info("Calling generation agent", agent_id=agent.agent_id, rpc_id=payload["id"])
        try:
            response = await client.post(agent.endpoint, json=payload, headers={"x-api-key": agent.api_key})
        except httpx.TimeoutException as e:
            raise TransientGenerationError(f"Agent '{agent.agent_id}' timed out: {type(e).__name__}")
        except httpx.TransportError as e:
            raise TransientGenerationError(f"Agent '{agent.agent_id}' unreachable: {type(e).__name__}")

        if response.status_code >= 500 or response.status_code == 429:
            raise TransientGenerationError(f"Agent '{agent.agent_id}' returned HTTP {response.status_code}")
        if response.status_code >= 400:
            raise PermanentGenerationError(f"Agent '{agent.agent_id}' rejected the request: HTTP {response.status_code}")

        try:
            body = response.json()
        except ValueError:
            raise PermanentGenerationError("Agent response body is not JSON")
        if not isinstance(body, dict):
            raise PermanentGenerationError("Agent response body is not a JSON object")

        error = body.get("error")
        if error:
            code = error.get("code") if isinstance(error, dict) else None
            message = error.get("message") if isinstance(error, dict) else str(error)
            if code in RETRYABLE_RPC_CODES:
                raise TransientGenerationError(f"Agent error {code}: {message}")
            raise PermanentGenerationError(f"Agent error {code}: {message}")

        data = parse_agent_json(extract_text(body))
        try:
            result = GenerationResult.model_validate(data)
        except SchemaError as e:
            raise PermanentGenerationError(f"Agent post failed validation: {e.error_count()} invalid field(s)")

        self._record_usage(agent.id)
        logger.info("Agent generation succeeded", agent_id=agent.agent_id, title=result.title)
        return result
