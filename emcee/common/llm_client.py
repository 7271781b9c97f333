"""
Provider-agnostic LLM client for Emcee.

Supports Anthropic, OpenAI, and Google Gemini with a shared text-generation
interface. Used for mention escalation, caption correction, and the default
response generator.

Each provider contributes a ``_connect_<provider>`` method (build the SDK
client from an API key) and a ``_generate_<provider>`` method (one
single-turn completion). Calls are synchronous; async callers wrap them in
``asyncio.to_thread``.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Any, Dict, Optional

from .config import LLMConfig

logger = logging.getLogger("emcee.common.llm_client")

SUPPORTED_PROVIDERS = ("anthropic", "openai", "google")


class LLMClient:
    """Unified text generation client across LLM providers.

    A client without a usable API key (or SDK) is constructed anyway and
    reports ``is_available = False``; callers degrade instead of failing.
    """

    def __init__(
        self,
        provider: str = "openai",
        model: str = "",
        anthropic_api_key: Optional[str] = None,
        openai_api_key: Optional[str] = None,
        google_api_key: Optional[str] = None,
    ) -> None:
        self.provider = (provider or "openai").lower()
        self.model = model
        self._client: Any = None
        # Gemini binds the system prompt to the model object
        self._gemini_models: Dict[str, Any] = {}

        if self.provider not in SUPPORTED_PROVIDERS:
            logger.warning("Unsupported LLM provider: %s", self.provider)
            return

        api_key = {
            "anthropic": anthropic_api_key,
            "openai": openai_api_key,
            "google": google_api_key,
        }[self.provider]
        if not api_key:
            logger.info("%s API key not provided, LLM client unavailable", self.provider)
            return

        try:
            self._client = getattr(self, f"_connect_{self.provider}")(api_key)
        except ImportError as e:
            logger.warning("SDK for %s not installed: %s", self.provider, e)
        except Exception as e:
            logger.warning("Failed to initialize %s client: %s", self.provider, e)

    @classmethod
    def from_config(cls, config: LLMConfig) -> "LLMClient":
        """Build a client for the configured provider and its model."""
        provider = (config.provider or "openai").lower()
        models = {
            "anthropic": config.anthropic_model,
            "openai": config.openai_model,
            "google": config.google_model,
        }
        return cls(
            provider=provider,
            model=models.get(provider, ""),
            anthropic_api_key=config.anthropic_api_key or None,
            openai_api_key=config.openai_api_key or None,
            google_api_key=config.google_api_key or None,
        )

    @property
    def is_available(self) -> bool:
        return self._client is not None

    def generate(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        max_tokens: int = 512,
        temperature: float = 0.1,
        timeout: float = 30.0,
    ) -> str:
        """
        Single-turn completion.

        Raises:
            RuntimeError: client not available
            Exception: whatever the provider SDK raises
        """
        if not self.is_available:
            raise RuntimeError("LLM client is not available")

        generate = getattr(self, f"_generate_{self.provider}")
        text = generate(prompt, system, max_tokens, temperature, timeout)
        return (text or "").strip()

    # ------------------------------------------------------------------
    # Anthropic
    # ------------------------------------------------------------------

    def _connect_anthropic(self, api_key: str) -> Any:
        import anthropic

        return anthropic.Anthropic(api_key=api_key)

    def _generate_anthropic(self, prompt, system, max_tokens, temperature, timeout) -> str:
        extra = {"system": system} if system else {}
        response = self._client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            temperature=temperature,
            messages=[{"role": "user", "content": prompt}],
            timeout=timeout,
            **extra,
        )
        return response.content[0].text

    # ------------------------------------------------------------------
    # OpenAI
    # ------------------------------------------------------------------

    def _connect_openai(self, api_key: str) -> Any:
        from openai import OpenAI

        return OpenAI(api_key=api_key)

    def _generate_openai(self, prompt, system, max_tokens, temperature, timeout) -> str:
        messages = [{"role": "system", "content": system}] if system else []
        messages.append({"role": "user", "content": prompt})
        response = self._client.chat.completions.create(
            model=self.model,
            max_tokens=max_tokens,
            temperature=temperature,
            messages=messages,
            timeout=timeout,
        )
        return response.choices[0].message.content

    # ------------------------------------------------------------------
    # Google Gemini
    # ------------------------------------------------------------------

    def _connect_google(self, api_key: str) -> Any:
        import google.generativeai as genai

        genai.configure(api_key=api_key)
        return genai

    def _gemini_model(self, system: Optional[str]) -> Any:
        key = hashlib.md5((system or "").encode()).hexdigest()
        model = self._gemini_models.get(key)
        if model is None:
            kwargs = {"model_name": self.model}
            if system:
                kwargs["system_instruction"] = system
            model = self._client.GenerativeModel(**kwargs)
            self._gemini_models[key] = model
        return model

    def _generate_google(self, prompt, system, max_tokens, temperature, timeout) -> str:
        response = self._gemini_model(system).generate_content(
            prompt,
            generation_config={"max_output_tokens": max_tokens, "temperature": temperature},
            request_options={"timeout": timeout},
        )
        return response.text
