"""Pick a lead image for a generated article."""

from __future__ import annotations

import logging
from typing import Any, Optional, Protocol, Sequence

import httpx
from openai import OpenAI

from .config import Settings

logger = logging.getLogger(__name__)

UNSPLASH_SEARCH_URL = "https://api.unsplash.com/search/photos"
IMAGE_SIZE = "1024x1024"


class ImageResolver(Protocol):
    def get_image_for_article(
        self,
        title: str,
        keywords: Sequence[str],
        references: Sequence[Optional[str]] = (),
    ) -> Optional[str]:
        """Return an image URL, or None when nothing suitable exists. Never raises."""


class NullImageResolver:
    """Resolver that never finds an image."""

    def get_image_for_article(self, title, keywords, references=()) -> Optional[str]:
        return None


def build_image_prompt(title: str) -> str:
    return (
        "Create a professional, journalistic image for a cryptocurrency article titled "
        f'"{title}". The image should be appropriate for a financial news website, '
        "with a clean, modern style."
    )


class DefaultImageResolver:
    """
    Tries, in order: the primary item's own image, AI generation, another
    contributing item's image, then an Unsplash search.

    `references` holds the contributing items' image URLs (or None), primary
    first. Each strategy that errors is logged and the next one is tried.
    """

    def __init__(
        self,
        *,
        openai_api_key: Optional[str] = None,
        image_model: str = "dall-e-3",
        generation_enabled: bool = True,
        unsplash_access_key: Optional[str] = None,
        timeout: float = 5.0,
        openai_client: Any = None,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        self.image_model = image_model
        self.unsplash_access_key = unsplash_access_key
        self.timeout = timeout
        self._http_client = http_client
        self._openai_client = openai_client
        if self._openai_client is None and openai_api_key and generation_enabled:
            self._openai_client = OpenAI(api_key=openai_api_key, timeout=timeout, max_retries=0)
        self.generation_enabled = generation_enabled and self._openai_client is not None

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "DefaultImageResolver":
        return cls(
            openai_api_key=settings.openai_api_key,
            image_model=settings.image_model,
            generation_enabled=settings.image_generation_enabled,
            unsplash_access_key=settings.unsplash_access_key,
            timeout=settings.http_timeout_seconds,
            **kwargs,
        )

    def get_image_for_article(
        self,
        title: str,
        keywords: Sequence[str],
        references: Sequence[Optional[str]] = (),
    ) -> Optional[str]:
        primary = references[0] if references else None
        if primary and primary.strip():
            return primary

        if self.generation_enabled:
            url = self.generate_image(title)
            if url:
                logger.info("Generated image for %r", title)
                return url

        for reference in references[1:]:
            if reference and reference.strip():
                return reference

        if self.unsplash_access_key:
            url = self.search_unsplash(" ".join(keywords[:3]) or title)
            if url:
                return url

        logger.info("No image found for %r", title)
        return None

    def generate_image(self, title: str) -> Optional[str]:
        try:
            response = self._openai_client.images.generate(
                model=self.image_model,
                prompt=build_image_prompt(title),
                n=1,
                size=IMAGE_SIZE,
            )
            data = getattr(response, "data", None) or []
            return data[0].url if data else None
        except Exception as exc:
            logger.warning("Image generation failed for %r: %s", title, exc)
            return None

    def search_unsplash(self, query: str) -> Optional[str]:
        params = {"query": query, "page": 1, "per_page": 1, "orientation": "landscape"}
        headers = {"Authorization": f"Client-ID {self.unsplash_access_key}"}
        try:
            if self._http_client is not None:
                response = self._http_client.get(
                    UNSPLASH_SEARCH_URL, params=params, headers=headers, timeout=self.timeout
                )
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    response = client.get(UNSPLASH_SEARCH_URL, params=params, headers=headers)
            response.raise_for_status()
            results = response.json().get("results") or []
            if not results:
                return None
            return results[0]["urls"]["regular"]
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as exc:
            logger.warning("Unsplash search failed for %r: %s", query, exc)
            return None
