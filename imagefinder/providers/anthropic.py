"""Anthropic Claude language model using anthropic SDK with native async."""

import asyncio
import logging
import os
import time

import anthropic as anthropic_sdk

from config.config_loader import ModelConfig
from imagefinder.models import Completion
from imagefinder.providers.base import LanguageModel, ProviderError

logger = logging.getLogger(__name__)


class AnthropicProvider(LanguageModel):
    """Anthropic Claude via anthropic SDK. Accepts image URLs for judging."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = anthropic_sdk.AsyncAnthropic(api_key=api_key)

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    async def complete(
        self,
        system_guide: str,
        user_prompt: str,
        max_output_units: int,
        image_url: str | None = None,
    ) -> Completion:
        content: list[dict] = []
        if image_url:
            content.append({"type": "image", "source": {"type": "url", "url": image_url}})
        content.append({"type": "text", "text": user_prompt})

        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.messages.create(
                    model=self._config.model,
                    max_tokens=max_output_units,
                    system=system_guide,
                    messages=[{"role": "user", "content": content}],
                ),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        if not response.content:
            raise ProviderError(self._config.name, "Empty response content")

        text_blocks = [b.text for b in response.content if b.type == "text"]
        if not text_blocks:
            raise ProviderError(self._config.name, "No text blocks in response")

        input_units = response.usage.input_tokens if response.usage else 0
        output_units = response.usage.output_tokens if response.usage else 0

        logger.debug(
            "Anthropic %s: %.2fs, %d in / %d out tokens",
            self._config.model,
            latency,
            input_units,
            output_units,
        )

        return Completion(
            text="\n".join(text_blocks).strip(),
            input_units=input_units,
            output_units=output_units,
        )
