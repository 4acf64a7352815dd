from __future__ import annotations

import asyncio
from typing import Any, List, Optional, Tuple
from unittest.mock import MagicMock

import pytest

from pakgpt_news.datamodels import (
    City,
    DigestPayload,
    FactStatus,
    FeedResult,
    IngestResult,
    Language,
    RacePolicy,
    StoryItem,
)
from pakgpt_news.gateway import GatewayError, NewsGateway
from pakgpt_news.orchestrator import (
    DIGEST,
    FEED,
    FEED_NOTE,
    INGEST_NOTE,
    STATUS,
    FetchOrchestrator,
)
from pakgpt_news.preferences import PreferenceStore

Outcome = Tuple[Optional[asyncio.Event], Any]


class FakeGateway:
    """Gateway double; each queued outcome can be held back by an event."""

    def __init__(self):
        self.calls: List[Tuple[str, tuple]] = []
        self.outcomes: dict[str, List[Outcome]] = {"ingest": [], "feed": [], "digest": []}

    def queue(self, op: str, outcome: Any, gate: Optional[asyncio.Event] = None) -> None:
        self.outcomes[op].append((gate, outcome))

    async def _resolve(self, op: str, *args: Any) -> Any:
        self.calls.append((op, args))
        gate, outcome = self.outcomes[op].pop(0)
        if gate is not None:
            await gate.wait()
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def ingest(self, sources, language):
        return await self._resolve("ingest", tuple(sources), language)

    async def fetch_feed(self, city, interests, urgency, language):
        return await self._resolve("feed", city, tuple(interests), urgency, language)

    async def fetch_digest(self, language):
        return await self._resolve("digest", language)


def story(key: str) -> StoryItem:
    return StoryItem(id=key, title=f"Story {key}", url=f"https://example.pk/{key}")


def feed_of(*keys: str) -> FeedResult:
    return FeedResult(items=tuple(story(k) for k in keys), count=len(keys))


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def orchestrator(gateway):
    return FetchOrchestrator(gateway, PreferenceStore())


def test_feed_success_replaces_items_and_note(gateway, orchestrator):
    gateway.queue("feed", feed_of("a", "b", "c"))
    events = []
    orchestrator.add_listener(events.append)

    asyncio.run(orchestrator.fetch_feed())

    assert [i.key for i in orchestrator.items] == ["a", "b", "c"]
    assert orchestrator.count == 3
    assert orchestrator.status.note == "Loaded 3 stories."
    assert orchestrator.status.busy is False
    assert FEED in events and STATUS in events


def test_busy_and_note_while_feed_in_flight(gateway, orchestrator):
    async def scenario():
        gate = asyncio.Event()
        gateway.queue("feed", feed_of("a"), gate)
        task = asyncio.create_task(orchestrator.fetch_feed())
        await asyncio.sleep(0)
        assert orchestrator.status.busy is True
        assert orchestrator.status.note == FEED_NOTE
        gate.set()
        await task

    asyncio.run(scenario())
    assert orchestrator.status.busy is False


def test_feed_failure_keeps_previous_items(gateway, orchestrator):
    gateway.queue("feed", feed_of("a"))
    gateway.queue("feed", GatewayError("Connection refused"))

    asyncio.run(orchestrator.fetch_feed())
    asyncio.run(orchestrator.fetch_feed())

    assert [i.key for i in orchestrator.items] == ["a"]
    assert orchestrator.status.note == "Failed to load feed: Connection refused"
    assert orchestrator.status.busy is False


def test_feed_count_comes_from_response(gateway, orchestrator):
    gateway.queue("feed", FeedResult(items=(story("a"),), count=40))
    asyncio.run(orchestrator.fetch_feed())
    assert orchestrator.count == 40
    assert orchestrator.status.note == "Loaded 40 stories."


@pytest.mark.parametrize(
    "op, outcome",
    [
        ("ingest", IngestResult(inserted=3)),
        ("ingest", GatewayError("down")),
        ("ingest", RuntimeError("bug")),
        ("feed", feed_of("a")),
        ("feed", GatewayError("down")),
        ("feed", RuntimeError("bug")),
    ],
)
def test_busy_always_released(gateway, orchestrator, op, outcome):
    gateway.queue(op, outcome)
    call = orchestrator.ingest if op == "ingest" else orchestrator.fetch_feed
    if isinstance(outcome, RuntimeError):
        with pytest.raises(RuntimeError):
            asyncio.run(call())
    else:
        asyncio.run(call())
    assert orchestrator.status.busy is False


def test_ingest_notes(gateway, orchestrator):
    gateway.queue("ingest", IngestResult(inserted=5))
    gateway.queue("ingest", GatewayError("timed out"))
    notes = []
    orchestrator.add_listener(lambda kind: notes.append(orchestrator.status.note))

    asyncio.run(orchestrator.ingest())
    assert notes[0] == INGEST_NOTE
    assert orchestrator.status.note == "Ingested 5 stories. You can fetch your feed now."

    asyncio.run(orchestrator.ingest())
    assert orchestrator.status.note == "Ingest failed: timed out"
    assert orchestrator.items == ()


def test_ingest_sends_demo_sources_and_language(gateway, orchestrator):
    orchestrator.store.set_language("ur")
    gateway.queue("ingest", IngestResult(inserted=0))
    asyncio.run(orchestrator.ingest())
    assert gateway.calls == [("ingest", (("dawn", "geo", "express"), Language.UR))]


def test_preferences_are_read_at_initiation(gateway, orchestrator):
    async def scenario():
        gate = asyncio.Event()
        gateway.queue("feed", feed_of("a"), gate)
        task = asyncio.create_task(orchestrator.fetch_feed())
        await asyncio.sleep(0)
        orchestrator.store.set_city(City.PESHAWAR)
        gate.set()
        await task

    asyncio.run(scenario())
    _, (city, _, _, _) = gateway.calls[0]
    assert city is City.KARACHI


def run_overlapping_feeds(orchestrator, gateway):
    """R1 starts first, R2 second; R2 finishes before R1."""

    async def scenario():
        r1_gate, r2_gate = asyncio.Event(), asyncio.Event()
        gateway.queue("feed", feed_of("r1", "r1b"), r1_gate)
        gateway.queue("feed", feed_of("r2"), r2_gate)
        r1 = asyncio.create_task(orchestrator.fetch_feed())
        r2 = asyncio.create_task(orchestrator.fetch_feed())
        await asyncio.sleep(0)
        r2_gate.set()
        await r2
        after_r2 = [i.key for i in orchestrator.items]
        r1_gate.set()
        await r1
        return after_r2

    return asyncio.run(scenario())


def test_overlapping_feeds_last_completion_wins(gateway, orchestrator):
    after_r2 = run_overlapping_feeds(orchestrator, gateway)

    assert after_r2 == ["r2"]
    # The older request finished last, so its payload is what remains.
    assert [i.key for i in orchestrator.items] == ["r1", "r1b"]
    assert orchestrator.status.note == "Loaded 2 stories."
    assert orchestrator.status.busy is False


def test_overlapping_feeds_last_initiated_wins(gateway):
    orchestrator = FetchOrchestrator(
        gateway, PreferenceStore(), race_policy=RacePolicy.LAST_INITIATED
    )
    after_r2 = run_overlapping_feeds(orchestrator, gateway)

    assert after_r2 == ["r2"]
    assert [i.key for i in orchestrator.items] == ["r2"]
    assert orchestrator.status.note == "Loaded 1 stories."
    assert orchestrator.status.busy is False


def test_last_initiated_keeps_busy_for_newer_request(gateway):
    orchestrator = FetchOrchestrator(gateway, PreferenceStore(), race_policy="last_initiated")

    async def scenario():
        r1_gate, r2_gate = asyncio.Event(), asyncio.Event()
        gateway.queue("feed", feed_of("r1"), r1_gate)
        gateway.queue("ingest", IngestResult(inserted=2), r2_gate)
        r1 = asyncio.create_task(orchestrator.fetch_feed())
        r2 = asyncio.create_task(orchestrator.ingest())
        await asyncio.sleep(0)
        r1_gate.set()
        await r1
        # The stale feed completion must not clear the ingest's busy state.
        assert orchestrator.status.busy is True
        assert orchestrator.status.note == INGEST_NOTE
        r2_gate.set()
        await r2

    asyncio.run(scenario())
    # Feed results are still the latest of their kind and apply.
    assert [i.key for i in orchestrator.items] == ["r1"]
    assert orchestrator.status.busy is False
    assert orchestrator.status.note.startswith("Ingested 2 stories.")


def test_digest_success_replaces_payload(gateway, orchestrator):
    digest = DigestPayload(headlines=("h1",), summary_60s="s")
    gateway.queue("digest", digest)
    asyncio.run(orchestrator.fetch_digest())
    assert orchestrator.digest == digest
    assert gateway.calls == [("digest", (Language.EN,))]


def test_digest_failure_is_silent(gateway, orchestrator):
    events = []
    orchestrator.add_listener(events.append)
    gateway.queue("digest", GatewayError("offline"))

    asyncio.run(orchestrator.fetch_digest())

    assert orchestrator.digest is None
    assert events == []
    assert orchestrator.status.busy is False
    assert orchestrator.status.note == ""


def test_digest_failure_keeps_previous_payload(gateway, orchestrator):
    digest = DigestPayload(headlines=("h1",))
    gateway.queue("digest", digest)
    gateway.queue("digest", GatewayError("offline"))

    asyncio.run(orchestrator.fetch_digest())
    asyncio.run(orchestrator.fetch_digest())

    assert orchestrator.digest is digest


def test_language_switch_refetches_digest_once(gateway, orchestrator):
    gateway.queue("digest", DigestPayload(summary_60s="urdu"))
    gateway.queue("digest", DigestPayload(summary_60s="english"))

    asyncio.run(orchestrator.switch_language("ur"))
    asyncio.run(orchestrator.switch_language(Language.UR))

    assert gateway.calls == [("digest", (Language.UR,))]
    assert orchestrator.store.preferences.language is Language.UR
    assert orchestrator.digest.summary_60s == "urdu"

    asyncio.run(orchestrator.switch_language("en"))
    assert gateway.calls[-1] == ("digest", (Language.EN,))
    assert len(gateway.calls) == 2


def test_language_switch_ignores_feed_state(gateway, orchestrator):
    async def scenario():
        gate = asyncio.Event()
        gateway.queue("feed", feed_of("a"), gate)
        gateway.queue("digest", DigestPayload(summary_60s="urdu"))
        feed = asyncio.create_task(orchestrator.fetch_feed())
        await asyncio.sleep(0)
        await orchestrator.switch_language("ur")
        assert orchestrator.digest.summary_60s == "urdu"
        assert orchestrator.status.busy is True
        gate.set()
        await feed

    asyncio.run(scenario())
    digest_calls = [c for c in gateway.calls if c[0] == "digest"]
    assert digest_calls == [("digest", (Language.UR,))]


def test_default_preferences_end_to_end():
    session = MagicMock()
    session.request.return_value.json.return_value = {
        "items": [
            {
                "id": "s1",
                "title": "T",
                "bullets": ["a", "b"],
                "impact": "x",
                "fact_status": "Verified",
            }
        ],
        "count": 1,
    }
    orchestrator = FetchOrchestrator(NewsGateway(session=session), PreferenceStore())

    asyncio.run(orchestrator.fetch_feed())

    _, kwargs = session.request.call_args
    assert kwargs["json"] == {
        "city": "Karachi",
        "interests": ["economy", "politics"],
        "urgency": "important",
        "language": "en",
    }
    assert orchestrator.count == 1
    (item,) = orchestrator.items
    assert item.key == "s1"
    assert item.fact_status is FactStatus.VERIFIED
    assert item.display_risk is None
