#!/usr/bin/env python3
"""
LLM Provider Management Module
Centralized management for all AI capability calls made by the scanner.

Supports multiple LLM providers:
- Anthropic (Claude)
- OpenAI (GPT-4o family)
- Ollama (local, self-hosted, OpenAI-compatible endpoint)

Features:
- Provider auto-detection
- Lazy async client initialization (API key read on first call)
- Two model tiers: "fast" for TURBO/STANDARD work, "deep" for SUPER_PRO audits
- Optional extended thinking budget (Anthropic only)
- Error classification on failure, leaving retries to resilient_caller
"""

import logging
from typing import Optional

from error_classifier import classify_llm_error
from exceptions import CapabilityUnavailableError

# Configure logging
logger = logging.getLogger(__name__)

TIER_FAST = "fast"
TIER_DEEP = "deep"


class LLMManager:
    """Unified LLM provider management

    Handles all interactions with LLM providers including:
    - Provider detection and client initialization
    - Model selection per tier
    - A single async ``complete`` call used by the audit and remediation adapters
    """

    # Default models for each provider and tier
    DEFAULT_MODELS = {
        "anthropic": {
            TIER_FAST: "claude-haiku-4-5-20251001",
            TIER_DEEP: "claude-sonnet-4-5-20250929",
        },
        "openai": {
            TIER_FAST: "gpt-4o-mini",
            TIER_DEEP: "gpt-4o",
        },
        "ollama": {
            TIER_FAST: "llama3.2:3b",
            TIER_DEEP: "llama3.1:8b",
        },
    }

    DEFAULT_MAX_TOKENS = 8192
    REQUEST_TIMEOUT = 300.0  # 5 minute timeout

    def __init__(self, config: dict = None):
        """Initialize LLM Manager

        Args:
            config: Configuration dictionary with API keys and settings
        """
        self.config = config or {}
        self.client = None
        self.provider = None

    def detect_provider(self) -> Optional[str]:
        """Auto-detect which AI provider to use based on available keys

        Returns:
            Provider name or None if no provider is configured
        """
        provider = self.config.get("ai_provider", "auto")

        if provider == "none":
            return None

        # Explicit provider selection (overrides auto-detection)
        if provider != "auto":
            return provider

        # Priority: Anthropic > OpenAI > Ollama (local)
        if self.config.get("anthropic_api_key"):
            return "anthropic"
        elif self.config.get("openai_api_key"):
            return "openai"
        elif self.config.get("ollama_endpoint"):
            return "ollama"
        else:
            logger.warning("No AI provider configured")
            logger.info("Set one of: ANTHROPIC_API_KEY, OPENAI_API_KEY, or OLLAMA_ENDPOINT")
            return None

    def _get_client(self, provider: str):
        """Get async AI client for the specified provider

        Args:
            provider: Provider name

        Returns:
            Tuple of (client, provider_name)

        Raises:
            CapabilityUnavailableError: If the API key is not configured
                or the provider is unknown
        """
        if provider == "anthropic":
            from anthropic import AsyncAnthropic

            api_key = self.config.get("anthropic_api_key")
            if not api_key:
                raise CapabilityUnavailableError("ANTHROPIC_API_KEY not configured")

            logger.info("Using Anthropic API")
            return AsyncAnthropic(api_key=api_key), "anthropic"

        elif provider == "openai":
            from openai import AsyncOpenAI

            api_key = self.config.get("openai_api_key")
            if not api_key:
                raise CapabilityUnavailableError("OPENAI_API_KEY not configured")

            logger.info("Using OpenAI API")
            return AsyncOpenAI(api_key=api_key), "openai"

        elif provider == "ollama":
            from openai import AsyncOpenAI

            endpoint = self.config.get("ollama_endpoint") or "http://localhost:11434"
            # Sanitize endpoint URL for logging
            safe_endpoint = (
                str(endpoint).split("@")[-1] if "@" in str(endpoint) else str(endpoint).split("//")[-1].split("/")[0]
            )
            logger.info(f"Using Ollama endpoint: {safe_endpoint}")
            return AsyncOpenAI(base_url=f"{endpoint}/v1", api_key="ollama"), "ollama"

        else:
            safe_provider = str(provider).split("/")[-1] if provider else "unknown"
            raise CapabilityUnavailableError(f"Unknown provider: {safe_provider} not configured")

    def _ensure_client(self) -> None:
        if self.client is not None:
            return
        provider = self.detect_provider()
        if provider is None:
            raise CapabilityUnavailableError("No AI provider configured")
        self.client, self.provider = self._get_client(provider)

    def get_model_name(self, tier: str = TIER_FAST, provider: str = None) -> str:
        """Get the model name for a tier

        Args:
            tier: "fast" or "deep"
            provider: Provider name (if None, uses self.provider)

        Returns:
            Model name
        """
        if provider is None:
            provider = self.provider

        override = self.config.get(f"{tier}_model", "auto")
        if override and override != "auto":
            return override

        models = self.DEFAULT_MODELS.get(provider, self.DEFAULT_MODELS["anthropic"])
        return models.get(tier, models[TIER_FAST])

    async def complete(
        self,
        prompt: str,
        *,
        tier: str = TIER_FAST,
        system: str = "",
        thinking_budget: int = 0,
        max_tokens: int = None,
    ) -> str:
        """Send one prompt and return the response text

        Args:
            prompt: User prompt text
            tier: Model tier ("fast" or "deep")
            system: Optional system prompt
            thinking_budget: Extended thinking tokens; 0 disables deliberation
            max_tokens: Maximum output tokens (excluding thinking)

        Returns:
            Response text ("" when the model returned no text)

        Raises:
            CapabilityUnavailableError: If no provider is configured
            Exception: Whatever the provider SDK raised, after classification
        """
        self._ensure_client()
        model = self.get_model_name(tier)
        max_tokens = max_tokens or int(self.config.get("max_output_tokens", self.DEFAULT_MAX_TOKENS))

        try:
            if self.provider == "anthropic":
                kwargs = {
                    "model": model,
                    "max_tokens": max_tokens,
                    "messages": [{"role": "user", "content": prompt}],
                    "timeout": self.REQUEST_TIMEOUT,
                }
                if system:
                    kwargs["system"] = system
                if thinking_budget > 0:
                    kwargs["thinking"] = {"type": "enabled", "budget_tokens": thinking_budget}
                    kwargs["max_tokens"] = max_tokens + thinking_budget
                message = await self.client.messages.create(**kwargs)
                response_text = "".join(
                    block.text for block in message.content if getattr(block, "type", None) == "text"
                )

            elif self.provider in ["openai", "ollama"]:
                messages = [{"role": "system", "content": system}] if system else []
                messages.append({"role": "user", "content": prompt})
                response = await self.client.chat.completions.create(
                    model=model,
                    messages=messages,
                    max_tokens=max_tokens,
                    timeout=self.REQUEST_TIMEOUT,
                )
                response_text = response.choices[0].message.content or ""

            else:
                raise CapabilityUnavailableError(f"Unknown provider: {self.provider} not configured")

            logger.debug("LLM call to %s/%s returned %d chars", self.provider, model, len(response_text))
            return response_text

        except Exception as e:
            classified = classify_llm_error(e, self.provider or "")
            logger.warning(
                "LLM API call failed: %s (retryable=%s): %s",
                classified.error_type,
                classified.retryable,
                e,
            )
            raise


__all__ = ["LLMManager", "TIER_FAST", "TIER_DEEP"]
