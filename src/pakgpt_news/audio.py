from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Sequence

from .datamodels import AudioState
from .gateway import GatewayError, NewsGateway

logger = logging.getLogger("pakgpt")

StateListener = Callable[[str, AudioState], None]


class PlaybackError(Exception):
    """The narration resource could not be played."""


class Playback(ABC):
    """Handle on one running narration."""

    @abstractmethod
    def stop(self) -> None:
        pass


class Player(ABC):
    """Abstract base class for an audio backend."""

    @abstractmethod
    async def play(self, url: str, on_ended: Callable[[], None]) -> Playback:
        """Start playing ``url``.

        Raises ``PlaybackError`` when playback cannot start. ``on_ended`` is
        called once when the stream finishes on its own, never after ``stop``.
        """
        pass


def _log_waiter_failure(task: asyncio.Task) -> None:
    if task.cancelled() or task.exception() is None:
        return
    logger.error("End-of-stream handler failed", exc_info=task.exception())


class SubprocessPlayback(Playback):
    def __init__(self, process: asyncio.subprocess.Process, on_ended: Callable[[], None]):
        self.process = process
        self._stopped = False
        self._waiter = asyncio.create_task(self._wait(on_ended))
        self._waiter.add_done_callback(_log_waiter_failure)

    async def _wait(self, on_ended: Callable[[], None]) -> None:
        returncode = await self.process.wait()
        logger.debug("Player %s exited with %s", self.process.pid, returncode)
        if not self._stopped:
            on_ended()

    def stop(self) -> None:
        self._stopped = True
        if self.process.returncode is None:
            self.process.terminate()


class SubprocessPlayer(Player):
    """Plays audio URLs through an external command such as mpv or ffplay."""

    def __init__(self, command: Sequence[str], startup_grace: float = 0.3):
        self.command = list(command)
        self.startup_grace = startup_grace

    async def play(self, url: str, on_ended: Callable[[], None]) -> Playback:
        if not url:
            raise PlaybackError("No audio URL returned")
        if not self.command:
            raise PlaybackError("No audio player configured")
        try:
            process = await asyncio.create_subprocess_exec(
                *self.command,
                url,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            raise PlaybackError(f"Cannot start {self.command[0]}: {e}") from e

        # A player that cannot open the stream exits almost at once.
        try:
            returncode = await asyncio.wait_for(process.wait(), timeout=self.startup_grace)
        except asyncio.TimeoutError:
            returncode = None
        if returncode:
            raise PlaybackError(f"{self.command[0]} exited with status {returncode}")
        return SubprocessPlayback(process, on_ended)


class AudioCoordinator:
    """Tracks narration state per story.

    Each story key has its own generation counter. A new ``play`` for a key
    bumps it, and results or end-of-stream events carrying an older
    generation are dropped, so a slow superseded request cannot overwrite
    the state of the newer one. Keys never share state.
    """

    def __init__(self, gateway: NewsGateway, player: Player):
        self.gateway = gateway
        self.player = player
        self.states: Dict[str, AudioState] = {}
        self._generations: Dict[str, int] = {}
        self._playbacks: Dict[str, Playback] = {}
        self._listeners: List[StateListener] = []

    def add_listener(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def state(self, key: str) -> AudioState:
        return self.states.get(key, AudioState.IDLE)

    def _set_state(self, key: str, state: AudioState) -> None:
        self.states[key] = state
        for listener in self._listeners:
            listener(key, state)

    def _is_current(self, key: str, generation: int) -> bool:
        return self._generations.get(key) == generation

    async def play(self, key: str, text: str, language: Any) -> None:
        generation = self._generations.get(key, 0) + 1
        self._generations[key] = generation
        self._set_state(key, AudioState.LOADING)

        try:
            result = await self.gateway.request_audio(text, language)
            if not self._is_current(key, generation):
                logger.debug("Dropping superseded audio for %s", key)
                return
            playback = await self.player.play(
                result.audio_url, lambda: self._on_ended(key, generation)
            )
        except (GatewayError, PlaybackError) as e:
            logger.warning("Narration for %s failed: %s", key, e)
            if self._is_current(key, generation):
                self._set_state(key, AudioState.ERROR)
            return
        except Exception:
            logger.exception("Unexpected narration failure for %s", key)
            if self._is_current(key, generation):
                self._set_state(key, AudioState.ERROR)
            return

        if not self._is_current(key, generation):
            playback.stop()
            return
        previous = self._playbacks.pop(key, None)
        if previous is not None:
            previous.stop()
        self._playbacks[key] = playback
        self._set_state(key, AudioState.PLAYING)

    def _on_ended(self, key: str, generation: int) -> None:
        if not self._is_current(key, generation):
            return
        if self.states.get(key) is not AudioState.PLAYING:
            return
        self._playbacks.pop(key, None)
        self._set_state(key, AudioState.IDLE)

    def close(self) -> None:
        """Stop every tracked playback, e.g. when the app exits."""
        for key, playback in list(self._playbacks.items()):
            logger.debug("Stopping narration for %s", key)
            playback.stop()
        self._playbacks.clear()
