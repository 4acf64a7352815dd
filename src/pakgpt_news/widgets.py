from __future__ import annotations

from datetime import datetime
from typing import Optional

from textual.app import ComposeResult
from textual.widgets import Checkbox, ListItem, Static
from textual.reactive import reactive
from rich.markup import escape
from rich.text import Text

from .config import HEADLINE_DISPLAY_LIMIT
from .datamodels import AudioState, DigestPayload, FactStatus, Interest, StoryItem

FACT_STYLES = {
    FactStatus.VERIFIED: "bold green",
    FactStatus.UNCONFIRMED: "bold yellow",
    FactStatus.RUMOUR: "bold red",
}


# --- Rendering helpers ---
def fact_badge(status: FactStatus, score: Optional[float] = None) -> Text:
    label = status.value
    if status is FactStatus.RUMOUR and score is not None:
        label = f"{label} • Risk {score:g}"
    return Text(f"[{label}]", style=FACT_STYLES.get(status, "bold"))


def audio_label(state: AudioState) -> str:
    if state is AudioState.LOADING:
        return "Loading audio…"
    if state is AudioState.PLAYING:
        return "Playing…"
    if state is AudioState.ERROR:
        return "Audio failed, press p to retry"
    return "p to play audio"


def format_published(value: Optional[str], now: Optional[datetime] = None) -> str:
    if not value:
        return (now or datetime.now()).strftime("%Y-%m-%d %H:%M")
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return value
    return parsed.strftime("%Y-%m-%d %H:%M")


def story_text(item: StoryItem, state: AudioState = AudioState.IDLE) -> Text:
    text = Text()
    text.append(item.title or item.url, style="bold")
    text.append("  ")
    text.append_text(fact_badge(item.fact_status, item.display_risk))
    text.append(f"\n{item.source} • {format_published(item.published_at)}", style="dim")
    for bullet in item.bullets:
        text.append(f"\n  • {bullet}")
    text.append(f"\nImpact: {item.impact}", style="bold blue")
    text.append(f"\n{audio_label(state)}", style="italic dim")
    return text


def digest_text(digest: Optional[DigestPayload]) -> Text:
    if digest is None:
        return Text("Loading digest…", style="dim")
    text = Text()
    text.append("Top Headlines\n", style="bold")
    for n, headline in enumerate(digest.headlines[:HEADLINE_DISPLAY_LIMIT], start=1):
        text.append(f"{n}. {headline}\n")
    text.append("\n60-second AI Summary\n", style="bold")
    text.append(f"{digest.summary_60s}\n")
    text.append("\nBusiness/Economy\n", style="bold")
    text.append(f"{digest.business_snapshot}\n")
    text.append("\nGlobal affecting Pakistan\n", style="bold")
    for item in digest.global_affecting_pk:
        text.append(f"• {item}\n")
    return text


# --- UI Widgets ---
class InterestCheckbox(Checkbox):
    def __init__(self, interest: Interest, value: bool):
        super().__init__(interest.value, value, id=f"interest-{interest.value}")
        self.interest = interest


class StoryCard(ListItem):
    def __init__(self, item: StoryItem, state: AudioState = AudioState.IDLE):
        super().__init__()
        self.item = item
        self.audio_state = state

    def compose(self) -> ComposeResult:
        yield Static(story_text(self.item, self.audio_state), classes="story-card")

    def set_audio_state(self, state: AudioState) -> None:
        self.audio_state = state
        self.query_one(Static).update(story_text(self.item, state))


class DigestPanel(Static):
    def show(self, digest: Optional[DigestPayload]) -> None:
        self.update(digest_text(digest))


class StatusBar(Static):
    note = reactive("")
    keybinding_hint = reactive("")

    def on_mount(self) -> None:
        self.update_display()

    def set_keybindings(self, hint: str) -> None:
        """Set the keybinding hint text."""
        self.keybinding_hint = hint

    def update_display(self) -> None:
        """Update the status bar display."""
        status_items = []
        if self.note:
            status_items.append(escape(self.note))

        if self.keybinding_hint:
            status_items.append(self.keybinding_hint)

        self.update(" | ".join(status_items))

    def watch_note(self, note: str) -> None:
        self.update_display()

    def watch_keybinding_hint(self, keybinding_hint: str) -> None:
        self.update_display()
