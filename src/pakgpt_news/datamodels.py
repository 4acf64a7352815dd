from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Tuple

from bs4 import BeautifulSoup

from .config import MAX_BULLETS


# --- Preference options ---
class City(str, Enum):
    KARACHI = "Karachi"
    LAHORE = "Lahore"
    ISLAMABAD = "Islamabad"
    PESHAWAR = "Peshawar"
    QUETTA = "Quetta"
    MULTAN = "Multan"
    FAISALABAD = "Faisalabad"
    RAWALPINDI = "Rawalpindi"


class Interest(str, Enum):
    POLITICS = "politics"
    ECONOMY = "economy"
    JOBS = "jobs"
    TECH = "tech"
    SPORTS = "sports"


class Urgency(str, Enum):
    BREAKING = "breaking"
    IMPORTANT = "important"
    FULL = "full"

    @property
    def label(self) -> str:
        return _URGENCY_LABELS[self]


class Language(str, Enum):
    EN = "en"
    UR = "ur"

    @property
    def label(self) -> str:
        return _LANGUAGE_LABELS[self]


_URGENCY_LABELS = {
    Urgency.BREAKING: "Breaking only",
    Urgency.IMPORTANT: "Important only",
    Urgency.FULL: "Full feed",
}

_LANGUAGE_LABELS = {
    Language.EN: "English",
    Language.UR: "اردو",
}


class FactStatus(str, Enum):
    VERIFIED = "Verified"
    UNCONFIRMED = "Unconfirmed"
    RUMOUR = "Rumour"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Any) -> "FactStatus":
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


class AudioState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    PLAYING = "playing"
    ERROR = "error"


class RacePolicy(str, Enum):
    """How overlapping requests on one channel resolve."""

    LAST_COMPLETION = "last_completion"
    LAST_INITIATED = "last_initiated"


# --- Data models ---
@dataclass
class Preferences:
    city: City = City.KARACHI
    interests: set[Interest] = field(
        default_factory=lambda: {Interest.ECONOMY, Interest.POLITICS}
    )
    urgency: Urgency = Urgency.IMPORTANT
    language: Language = Language.EN


@dataclass
class RequestStatus:
    busy: bool = False
    note: str = ""


@dataclass(frozen=True)
class StoryItem:
    id: Optional[str]
    title: str
    url: str
    source: str = ""
    published_at: Optional[str] = None
    bullets: Tuple[str, ...] = ()
    impact: str = ""
    fact_status: FactStatus = FactStatus.UNKNOWN
    risk_score: Optional[float] = None

    @property
    def key(self) -> str:
        """Identity used for audio state and list rendering."""
        return self.id or self.url or self.title

    @property
    def display_risk(self) -> Optional[float]:
        if self.fact_status is FactStatus.RUMOUR:
            return self.risk_score
        return None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StoryItem":
        raw_id = data.get("id")
        return cls(
            id=str(raw_id) if raw_id not in (None, "") else None,
            title=clean_text(data.get("title")),
            url=clean_text(data.get("url")),
            source=clean_text(data.get("source")),
            published_at=data.get("published_at") or None,
            bullets=tuple(clean_text(b) for b in as_list(data.get("bullets"))[:MAX_BULLETS]),
            impact=clean_text(data.get("impact")),
            fact_status=FactStatus.parse(data.get("fact_status")),
            risk_score=_as_number(data.get("risk_score")),
        )


@dataclass(frozen=True)
class DigestPayload:
    headlines: Tuple[str, ...] = ()
    summary_60s: str = ""
    business_snapshot: str = ""
    global_affecting_pk: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DigestPayload":
        business = data.get("business_economy")
        snapshot = business.get("snapshot") if isinstance(business, dict) else None
        return cls(
            headlines=tuple(clean_text(h) for h in as_list(data.get("headlines"))),
            summary_60s=clean_text(data.get("summary_60s")),
            business_snapshot=clean_text(snapshot),
            global_affecting_pk=tuple(
                clean_text(g) for g in as_list(data.get("global_affecting_pk"))
            ),
        )


@dataclass(frozen=True)
class IngestResult:
    inserted: int = 0


@dataclass(frozen=True)
class FeedResult:
    items: Tuple[StoryItem, ...] = ()
    count: int = 0


@dataclass(frozen=True)
class AudioResult:
    audio_url: str = ""


# --- Utilities ---
def clean_text(value: Any) -> str:
    """Return plain text, dropping any markup the service sent along."""
    if value is None:
        return ""
    text = str(value)
    if "<" in text and ">" in text:
        text = BeautifulSoup(text, "lxml").get_text(" ", strip=True)
    return text.strip()


def as_list(value: Any) -> list:
    if isinstance(value, (list, tuple)):
        return list(value)
    return []


def as_count(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return 0


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def narration_text(item: StoryItem) -> str:
    """Text read out for a story: title, bullets, then impact."""
    return f"{item.title}. {'. '.join(item.bullets)}. {item.impact}"


def interest_values(interests: Iterable[Interest]) -> list[str]:
    # Sorted so the request body does not depend on set ordering.
    return sorted(i.value for i in interests)
