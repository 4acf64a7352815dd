from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Dict, Iterable, Optional

import requests

from .config import DEFAULT_BACKEND_URL, HTTP_TIMEOUT, REQUEST_HEADERS
from .datamodels import (
    AudioResult,
    DigestPayload,
    FeedResult,
    IngestResult,
    StoryItem,
    as_count,
    as_list,
    clean_text,
)

logger = logging.getLogger("pakgpt")


class GatewayError(Exception):
    """A remote call failed in transport or while decoding the response."""


def _value(option: Any) -> Any:
    return option.value if isinstance(option, Enum) else option


class NewsGateway:
    """Issues the four calls of the news service.

    Every call is a single round trip with no retry and no caching. The
    blocking ``requests`` call runs in a worker thread so the event loop is
    free while it waits; nothing here touches client state.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BACKEND_URL,
        timeout: float = HTTP_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or self._create_session()

    def _create_session(self) -> requests.Session:
        s = requests.Session()
        s.headers.update(REQUEST_HEADERS)
        return s

    def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            logger.debug("%s %s", method, url)
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning("%s %s failed: %s", method, url, e)
            raise GatewayError(str(e)) from e
        if not isinstance(data, dict):
            logger.warning("%s %s returned %s, expected an object", method, url, type(data).__name__)
            raise GatewayError("Unexpected response format from news service")
        return data

    async def _call(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        return await asyncio.to_thread(self._request, method, path, **kwargs)

    async def ingest(self, sources: Iterable[str], language: Any) -> IngestResult:
        data = await self._call(
            "POST",
            "/api/ingest",
            json={"sources": list(sources), "language": _value(language)},
        )
        return IngestResult(inserted=as_count(data.get("inserted")))

    async def fetch_feed(
        self, city: Any, interests: Iterable[Any], urgency: Any, language: Any
    ) -> FeedResult:
        payload = {
            "city": _value(city),
            "interests": [_value(i) for i in interests],
            "urgency": _value(urgency),
            "language": _value(language),
        }
        data = await self._call("POST", "/api/feed", json=payload)
        items = tuple(
            StoryItem.from_dict(raw) for raw in as_list(data.get("items")) if isinstance(raw, dict)
        )
        # Without an id, url or title a story has no identity to key audio state on.
        items = tuple(item for item in items if item.key)
        return FeedResult(items=items, count=as_count(data.get("count")))

    async def fetch_digest(self, language: Any) -> DigestPayload:
        data = await self._call("GET", "/api/digest", params={"language": _value(language)})
        return DigestPayload.from_dict(data)

    async def request_audio(self, text: str, language: Any) -> AudioResult:
        data = await self._call(
            "POST", "/api/audio", json={"text": text, "language": _value(language)}
        )
        return AudioResult(audio_url=clean_text(data.get("audio_url")))
