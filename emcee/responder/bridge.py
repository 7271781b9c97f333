"""
Meeting Bridge & Response Generator

Concrete collaborators used by the control server:

- HttpMeetingBridge: posts chat messages, speech and hand state to the
  meeting bridge process over HTTP (httpx)
- LLMResponseGenerator: answers a trigger with the configured LLM

Bridge API (relative to bridge_url):
    POST /chat   {"text": "..."}
    POST /speak  {"text": "..."}
    POST /hand   {"raised": true|false}
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from ..common.llm_client import LLMClient
from .behavior_processor import GeneratedResponse, TriggerContext

logger = logging.getLogger("emcee.responder.bridge")


class BridgeError(Exception):
    """Error communicating with the meeting bridge."""
    pass


class HttpMeetingBridge:
    """
    Async HTTP client for the meeting bridge.

    The client is created lazily on first use and reused until close().

    Usage:
        bridge = HttpMeetingBridge("http://localhost:8091")
        await bridge.send_chat("Here is the summary...")
        await bridge.close()
    """

    def __init__(self, base_url: str, timeout: float = 10.0):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def base_url(self) -> str:
        return self._base_url

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=httpx.Timeout(self._timeout),
            )
        return self._client

    async def _post(self, path: str, payload: Dict[str, Any]) -> None:
        if not self._base_url:
            raise BridgeError("Meeting bridge URL not configured")
        try:
            response = await self._get_client().post(path, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise BridgeError(f"Bridge {path} returned {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise BridgeError(f"Bridge {path} request failed: {e}") from e

    async def send_chat(self, text: str) -> None:
        await self._post("/chat", {"text": text})
        logger.debug("Sent chat message (%d chars)", len(text))

    async def speak(self, text: str) -> None:
        await self._post("/speak", {"text": text})
        logger.debug("Sent speech (%d chars)", len(text))

    async def raise_hand(self) -> None:
        await self._post("/hand", {"raised": True})

    async def lower_hand(self) -> None:
        await self._post("/hand", {"raised": False})

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


RESPONSE_POLICY = """You are {agent_name}, an AI assistant participating in a live meeting.

Someone addressed you via {channel}. Answer them directly.

Rules:
- Be brief: 1-3 sentences, the meeting is live
- Spoken answers must read naturally aloud (no markdown, lists or URLs)
- If you do not know, say so plainly
- Never invent meeting facts that are not in the recent conversation"""

CHANNEL_LABELS = {
    "caption-mention": "speech",
    "chat-mention": "the meeting chat",
}


class LLMResponseGenerator:
    """
    Response generator backed by LLMClient.

    Callable as ``await generator(context)``; raises when the LLM is not
    configured or the call fails (the behavior processor reports it).
    """

    def __init__(
        self,
        llm_client: LLMClient,
        agent_name: str,
        max_tokens: int = 300,
        temperature: float = 0.4,
    ):
        self._llm = llm_client
        self._agent_name = agent_name
        self._max_tokens = max_tokens
        self._temperature = temperature

    @property
    def is_available(self) -> bool:
        return self._llm.is_available

    def _build_prompt(self, context: TriggerContext) -> str:
        lines = []
        recent = context.meeting_context.get("recent_captions") or []
        if recent:
            lines.append("Recent conversation:")
            lines.extend(recent)
            lines.append("")
        lines.append(f"{context.author}: {context.content}")
        return "\n".join(lines)

    async def __call__(self, context: TriggerContext) -> GeneratedResponse:
        system = RESPONSE_POLICY.format(
            agent_name=self._agent_name,
            channel=CHANNEL_LABELS.get(context.source.value, "the meeting"),
        )
        text = await asyncio.to_thread(
            self._llm.generate,
            self._build_prompt(context),
            system=system,
            max_tokens=self._max_tokens,
            temperature=self._temperature,
        )
        return GeneratedResponse(text=text.strip())
