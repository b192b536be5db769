"""
LLM client for sending prompts to Claude or OpenAI.

Both providers are reached through the OpenAI Python SDK; Anthropic is
addressed through its OpenAI-compatible endpoint.
"""

import logging
from typing import Any, Optional
from openai import OpenAI, OpenAIError

logger = logging.getLogger(__name__)

ANTHROPIC_BASE_URL = "https://api.anthropic.com/v1"
PROVIDERS = ("anthropic", "openai")


class LLMClient:
    """
    Chat-completion client for one provider and model.

    The SDK client is safe to share between threads, so a single LLMClient
    serves every concurrent prediction task. Transport-level retries are
    left to the SDK (max_retries).
    """

    def __init__(
        self,
        provider: str,
        model: str,
        api_key: str,
        temperature: float = 0.0,
        max_tokens: int = 1024,
        timeout: float = 60.0,
        max_retries: int = 3
    ):
        """
        Args:
            provider: 'anthropic' or 'openai'
            model: Model name (e.g., 'gpt-4o-mini', 'claude-3-5-haiku-20241022')
            api_key: API key for the provider
            temperature: Sampling temperature (0.0 keeps scores repeatable)
            max_tokens: Response token cap; a label score list is short
            timeout: Per-request timeout in seconds
            max_retries: SDK retries for connection errors, 429 and 5xx

        Raises:
            ValueError: If provider is not supported or API key is missing
        """
        self.provider = provider.lower()
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

        if self.provider not in PROVIDERS:
            raise ValueError(f"Unsupported provider: {provider}. Must be 'anthropic' or 'openai'")

        if not api_key:
            raise ValueError(f"{provider} API key is required but not provided")

        client_options: dict[str, Any] = {"api_key": api_key, "timeout": timeout, "max_retries": max_retries}
        if self.provider == "anthropic":
            client_options["base_url"] = ANTHROPIC_BASE_URL

        self.client = OpenAI(**client_options)
        logger.debug(f"Initialized LLMClient: provider={self.provider}, model={model}")

    def send_prompt(self, prompt: str, system: Optional[str] = None, json_mode: bool = False) -> str:
        """
        Send a prompt and return the text of the first choice.

        Args:
            prompt: User message
            system: Optional system message, sent first
            json_mode: Ask for a JSON object response where the provider
                       supports it (OpenAI only; other providers rely on the prompt)

        Returns:
            Response text, or "" if the model returned no content

        Raises:
            OpenAIError: If the API call fails after the SDK's own retries
        """
        messages = [{"role": "user", "content": prompt}]
        if system:
            messages.insert(0, {"role": "system", "content": system})

        request: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        if json_mode and self.provider == "openai":
            request["response_format"] = {"type": "json_object"}

        logger.debug(f"Sending prompt to {self.provider} ({len(prompt)} chars)")
        try:
            response = self.client.chat.completions.create(**request)
        except OpenAIError as e:
            logger.error(f"LLM API call failed: {e}")
            raise

        usage = getattr(response, "usage", None)
        if usage:
            logger.debug(f"LLM usage: {usage.prompt_tokens} prompt / {usage.completion_tokens} completion tokens")

        return response.choices[0].message.content or ""
