"""OpenAI chat (text + vision) and image generation using openai SDK with native async."""

import asyncio
import logging
import os
import time

from openai import AsyncOpenAI

from config.config_loader import ModelConfig
from imagefinder.models import Completion
from imagefinder.providers.base import ImageGenerator, LanguageModel, ProviderError

logger = logging.getLogger(__name__)


def _build_client(config: ModelConfig) -> AsyncOpenAI:
    api_key = os.environ.get(config.api_key_env, "").strip()
    if not api_key:
        raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
    if config.base_url:
        return AsyncOpenAI(api_key=api_key, base_url=config.base_url)
    return AsyncOpenAI(api_key=api_key)


class OpenAIProvider(LanguageModel):
    """OpenAI chat completions via openai SDK."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        self._client = _build_client(config)

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
        if image_url:
            user_content: str | list = [
                {"type": "text", "text": user_prompt},
                {"type": "image_url", "image_url": {"url": image_url, "detail": "low"}},
            ]
        else:
            user_content = user_prompt

        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(
                    model=self._config.model,
                    max_tokens=max_output_units,
                    messages=[
                        {"role": "system", "content": system_guide},
                        {"role": "user", "content": user_content},
                    ],
                ),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        choice = response.choices[0] if response.choices else None
        if not choice or not choice.message.content:
            raise ProviderError(self._config.name, "Empty response content")

        input_units = response.usage.prompt_tokens if response.usage else 0
        output_units = response.usage.completion_tokens if response.usage else 0

        logger.debug(
            "OpenAI %s: %.2fs, %d in / %d out tokens",
            self._config.model,
            latency,
            input_units,
            output_units,
        )

        return Completion(
            text=choice.message.content.strip(),
            input_units=input_units,
            output_units=output_units,
        )


class OpenAIImageGenerator(ImageGenerator):
    """OpenAI Images API (dall-e-3) via openai SDK."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        self._client = _build_client(config)

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    async def create(self, prompt: str, size: str | None = None) -> str:
        effective_size = size or self._config.size or "1792x1024"
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.images.generate(
                    model=self._config.model,
                    prompt=prompt,
                    n=1,
                    size=effective_size,
                    quality=self._config.quality or "standard",
                ),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        if not response.data or not response.data[0].url:
            raise ProviderError(self._config.name, "No image URL in response")

        logger.info("Generated image with %s in %.1fs", self._config.model, time.monotonic() - start)
        return response.data[0].url
