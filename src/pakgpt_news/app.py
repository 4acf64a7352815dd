from __future__ import annotations

import logging
import webbrowser
from typing import Optional

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical, VerticalScroll
from textual.widgets import Button, Checkbox, Header, ListView, Select, Static
from textual.worker import Worker, WorkerState
from rich.text import Text

from .audio import AudioCoordinator, Player, SubprocessPlayer
from .config import Settings, load_settings
from .datamodels import (
    City,
    Interest,
    Language,
    Urgency,
    narration_text,
)
from .gateway import NewsGateway
from .messages import AudioStateChanged, OrchestratorChanged
from .orchestrator import DIGEST, FEED, PREFERENCES, STATUS, FetchOrchestrator
from .preferences import PreferenceStore
from .widgets import DigestPanel, InterestCheckbox, StatusBar, StoryCard

logger = logging.getLogger("pakgpt")

KEYBINDINGS_HINT = "[b]i[/] ingest, [b]f[/] feed, [b]p[/] play, [b]r[/] refresh digest"
EMPTY_FEED = "No stories yet. Press Ingest (demo), then Generate My Feed."


class NewsApp(App):
    TITLE = "PakGPT News Engine"
    SUB_TITLE = "AI-filtered, bias-reduced news. 3 bullets + impact, Urdu/English, audio-ready."

    CSS_PATH = "app.css"

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("i", "ingest", "Ingest"),
        Binding("f", "fetch_feed", "Feed"),
        Binding("r", "refresh_digest", "Refresh Digest"),
        Binding("p", "play_audio", "Play Audio"),
        Binding("o", "open_source", "Original Source"),
    ]

    def __init__(
        self,
        settings: Optional[Settings] = None,
        gateway: Optional[NewsGateway] = None,
        player: Optional[Player] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.settings = settings or load_settings()
        self.gateway = gateway or NewsGateway(
            self.settings.backend_url, timeout=self.settings.http_timeout
        )
        self.store = PreferenceStore()
        self.orchestrator = FetchOrchestrator(
            self.gateway, self.store, race_policy=self.settings.race_policy
        )
        self.audio = AudioCoordinator(
            self.gateway, player or SubprocessPlayer(self.settings.player_command)
        )
        self.orchestrator.add_listener(
            lambda kind: self.post_message(OrchestratorChanged(kind))
        )
        self.audio.add_listener(
            lambda key, state: self.post_message(AudioStateChanged(key, state))
        )

    def compose(self) -> ComposeResult:
        prefs = self.store.preferences
        yield Header()
        with Horizontal(id="controls"):
            yield Select(
                [(c.value, c) for c in City], value=prefs.city, allow_blank=False, id="city"
            )
            yield Select(
                [(u.label, u) for u in Urgency],
                value=prefs.urgency,
                allow_blank=False,
                id="urgency",
            )
            yield Select(
                [(lang.label, lang) for lang in Language],
                value=prefs.language,
                allow_blank=False,
                id="language",
            )
        with Horizontal(id="interests"):
            for interest in Interest:
                yield InterestCheckbox(interest, interest in prefs.interests)
        with Horizontal(id="actions"):
            yield Button("Ingest Sources (demo)", id="ingest")
            yield Button("Generate My Feed", id="feed", variant="primary")
        with Horizontal(id="main"):
            with Vertical(id="feed-pane"):
                yield Static("Your Feed", classes="pane-title")
                yield Static("", id="filters")
                yield Static(EMPTY_FEED, id="feed-empty")
                yield ListView(id="feed-list")
            with VerticalScroll(id="digest-pane"):
                yield Static("Morning God Mode Digest", classes="pane-title")
                yield DigestPanel(id="digest")
                yield Static(
                    "Delivery channels (app, WhatsApp, email) can be wired here in production.",
                    classes="hint",
                )
        yield StatusBar()

    def on_mount(self) -> None:
        self.query_one(StatusBar).set_keybindings(KEYBINDINGS_HINT)
        self.query_one(DigestPanel).show(None)
        self.query_one("#feed-list", ListView).display = False
        self._update_filters()
        self.run_worker(self.orchestrator.fetch_digest(), group="digest", exit_on_error=False)

    def on_unmount(self) -> None:
        self.audio.close()

    # --- State rendering ---
    def on_orchestrator_changed(self, message: OrchestratorChanged) -> None:
        if message.kind == STATUS:
            status = self.orchestrator.status
            self.query_one(StatusBar).note = status.note
            self.query_one("#ingest", Button).disabled = status.busy
            self.query_one("#feed", Button).disabled = status.busy
        elif message.kind == FEED:
            self._show_feed()
        elif message.kind == DIGEST:
            self.query_one(DigestPanel).show(self.orchestrator.digest)
        elif message.kind == PREFERENCES:
            self._update_filters()

    def on_worker_state_changed(self, event: Worker.StateChanged) -> None:
        if event.state is not WorkerState.ERROR:
            return
        error = getattr(event.worker, "error", None)
        logger.error("Worker in group %s failed: %s", event.worker.group, error)
        if event.worker.group == "requests":
            self.query_one(StatusBar).note = f"Request failed: {error}"

    def on_audio_state_changed(self, message: AudioStateChanged) -> None:
        for card in self.query(StoryCard):
            if card.item.key == message.key:
                card.set_audio_state(message.state)

    def _show_feed(self) -> None:
        feed_list = self.query_one("#feed-list", ListView)
        feed_list.clear()
        items = self.orchestrator.items
        self.query_one("#feed-empty").display = not items
        feed_list.display = bool(items)
        for item in items:
            feed_list.append(StoryCard(item, self.audio.state(item.key)))

    def _update_filters(self) -> None:
        prefs = self.store.preferences
        pills = [prefs.city.value]
        pills += sorted(i.value for i in prefs.interests)
        pills += [prefs.urgency.value, prefs.language.label]
        self.query_one("#filters", Static).update(Text("  ".join(f"[{p}]" for p in pills)))

    # --- Controls ---
    def on_select_changed(self, event: Select.Changed) -> None:
        if event.value is Select.BLANK:
            return
        if event.select.id == "city":
            self.store.set_city(event.value)
        elif event.select.id == "urgency":
            self.store.set_urgency(event.value)
        elif event.select.id == "language":
            self.run_worker(
                self.orchestrator.switch_language(event.value),
                group="digest",
                exit_on_error=False,
            )
            return
        self._update_filters()

    def on_checkbox_changed(self, event: Checkbox.Changed) -> None:
        if not isinstance(event.checkbox, InterestCheckbox):
            return
        interest = event.checkbox.interest
        if (interest in self.store.preferences.interests) != event.value:
            self.store.toggle_interest(interest)
        self._update_filters()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "ingest":
            self.action_ingest()
        elif event.button.id == "feed":
            self.action_fetch_feed()

    def on_list_view_selected(self, event: ListView.Selected) -> None:
        if isinstance(event.item, StoryCard):
            self._play(event.item)

    # --- Actions ---
    def action_ingest(self) -> None:
        self.run_worker(self.orchestrator.ingest(), group="requests", exit_on_error=False)

    def action_fetch_feed(self) -> None:
        self.run_worker(self.orchestrator.fetch_feed(), group="requests", exit_on_error=False)

    def action_refresh_digest(self) -> None:
        self.run_worker(self.orchestrator.fetch_digest(), group="digest", exit_on_error=False)

    def action_play_audio(self) -> None:
        card = self._highlighted_card()
        if card:
            self._play(card)

    def action_open_source(self) -> None:
        card = self._highlighted_card()
        if card and card.item.url:
            webbrowser.open(card.item.url)

    def _highlighted_card(self) -> Optional[StoryCard]:
        item = self.query_one("#feed-list", ListView).highlighted_child
        return item if isinstance(item, StoryCard) else None

    def _play(self, card: StoryCard) -> None:
        item = card.item
        self.run_worker(
            self.audio.play(item.key, narration_text(item), self.store.preferences.language),
            group="audio",
            exit_on_error=False,
        )
