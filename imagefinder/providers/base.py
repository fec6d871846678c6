"""Abstract bases for language-model, image-generation and image-search providers."""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from imagefinder.models import Completion


class ProviderError(Exception):
    """Raised when a provider call fails."""

    def __init__(self, provider_name: str, message: str) -> None:
        self.provider_name = provider_name
        super().__init__(f"[{provider_name}] {message}")


@dataclass
class ImageHit:
    """One raw search result before it becomes a Candidate."""

    url: str
    credit: str  # photographer or source site


class LanguageModel(ABC):
    """Chat-style model used by the planner and the judge."""

    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    def model_string(self) -> str:
        """Return the actual model identifier string (used for pricing)."""
        ...

    @abstractmethod
    async def complete(
        self,
        system_guide: str,
        user_prompt: str,
        max_output_units: int,
        image_url: str | None = None,
    ) -> Completion:
        """Send one prompt, optionally with an attached image URL.

        Raises:
            ProviderError: On API failure, timeout, or empty response.
        """
        ...


class ImageGenerator(ABC):
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    def model_string(self) -> str:
        ...

    @abstractmethod
    async def create(self, prompt: str, size: str | None = None) -> str:
        """Generate one image and return its URL.

        Raises:
            ProviderError: On API failure, timeout, or missing image data.
        """
        ...


class ImageSearch(ABC):
    """Keyword image search (stock photo sites, web image search)."""

    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    async def query(self, query: str) -> list[ImageHit]:
        """Run one search.

        Raises:
            ProviderError: On network, auth or rate-limit failure.
        """
        ...
