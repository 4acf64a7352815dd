from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from .config import INGEST_SOURCES
from .datamodels import (
    DigestPayload,
    Language,
    RacePolicy,
    RequestStatus,
    StoryItem,
    interest_values,
)
from .gateway import GatewayError, NewsGateway
from .preferences import PreferenceStore

logger = logging.getLogger("pakgpt")

# Change kinds passed to listeners.
STATUS = "status"
FEED = "feed"
DIGEST = "digest"
PREFERENCES = "preferences"

INGEST_NOTE = "Ingesting sample sources and generating summaries..."
FEED_NOTE = "Fetching your personalized feed..."

Listener = Callable[[str], None]


class FetchOrchestrator:
    """Runs ingest, feed and digest requests and owns their results.

    Ingest and feed share one visible status (``busy`` and ``note``); the
    digest refreshes silently. Overlapping requests are not locked out.
    Under ``RacePolicy.LAST_COMPLETION`` whichever response arrives last
    wins, so an older, slower feed request overwrites a newer one that
    finished first. ``RacePolicy.LAST_INITIATED`` stamps each request with a
    per-channel generation and drops results from anything but the most
    recently started request.
    """

    def __init__(
        self,
        gateway: NewsGateway,
        store: PreferenceStore,
        race_policy: Union[RacePolicy, str] = RacePolicy.LAST_COMPLETION,
        ingest_sources: Sequence[str] = INGEST_SOURCES,
    ):
        self.gateway = gateway
        self.store = store
        self.race_policy = RacePolicy(race_policy)
        self.ingest_sources = tuple(ingest_sources)

        self.status = RequestStatus()
        self.items: Tuple[StoryItem, ...] = ()
        self.count = 0
        self.digest: Optional[DigestPayload] = None

        self._generations: Dict[str, int] = {STATUS: 0, FEED: 0, DIGEST: 0}
        self._listeners: List[Listener] = []

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def _notify(self, kind: str) -> None:
        for listener in self._listeners:
            listener(kind)

    def _begin(self, channel: str) -> int:
        self._generations[channel] += 1
        return self._generations[channel]

    def _is_current(self, channel: str, generation: int) -> bool:
        if self.race_policy is RacePolicy.LAST_COMPLETION:
            return True
        return self._generations[channel] == generation

    def _set_status(self, busy: Optional[bool] = None, note: Optional[str] = None) -> None:
        if busy is not None:
            self.status.busy = busy
        if note is not None:
            self.status.note = note
        self._notify(STATUS)

    async def ingest(self) -> None:
        language = self.store.preferences.language
        status_gen = self._begin(STATUS)
        self._set_status(busy=True, note=INGEST_NOTE)
        try:
            result = await self.gateway.ingest(self.ingest_sources, language)
        except GatewayError as e:
            logger.error("Ingest failed: %s", e)
            if self._is_current(STATUS, status_gen):
                self._set_status(note=f"Ingest failed: {e}")
        else:
            logger.info("Ingested %d stories", result.inserted)
            if self._is_current(STATUS, status_gen):
                self._set_status(
                    note=f"Ingested {result.inserted} stories. You can fetch your feed now."
                )
        finally:
            if self._is_current(STATUS, status_gen):
                self._set_status(busy=False)

    async def fetch_feed(self) -> None:
        prefs = self.store.snapshot()
        status_gen = self._begin(STATUS)
        feed_gen = self._begin(FEED)
        self._set_status(busy=True, note=FEED_NOTE)
        try:
            result = await self.gateway.fetch_feed(
                prefs.city, interest_values(prefs.interests), prefs.urgency, prefs.language
            )
        except GatewayError as e:
            logger.error("Failed to load feed: %s", e)
            if self._is_current(STATUS, status_gen):
                self._set_status(note=f"Failed to load feed: {e}")
        else:
            logger.info("Loaded %d stories", result.count)
            if self._is_current(FEED, feed_gen):
                self.items = result.items
                self.count = result.count
                self._notify(FEED)
            if self._is_current(STATUS, status_gen):
                self._set_status(note=f"Loaded {result.count} stories.")
        finally:
            if self._is_current(STATUS, status_gen):
                self._set_status(busy=False)

    async def fetch_digest(self, language: Optional[Union[Language, str]] = None) -> None:
        """Refresh the digest; on failure the previous one is kept."""
        lang = Language(language) if language is not None else self.store.preferences.language
        digest_gen = self._begin(DIGEST)
        try:
            payload = await self.gateway.fetch_digest(lang)
        except GatewayError as e:
            logger.debug("Digest refresh for %s failed: %s", lang.value, e)
            return
        if self._is_current(DIGEST, digest_gen):
            self.digest = payload
            self._notify(DIGEST)

    async def switch_language(self, language: Union[Language, str]) -> None:
        previous = self.store.preferences.language
        self.store.set_language(language)
        current = self.store.preferences.language
        if current is not previous:
            self._notify(PREFERENCES)
            await self.fetch_digest(current)
