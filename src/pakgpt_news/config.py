from __future__ import annotations

import logging
import os
import shlex
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Mapping, Optional

# --- Configuration ---
DEFAULT_BACKEND_URL = "http://localhost:8000"
HTTP_TIMEOUT = 30.0
INGEST_SOURCES = ("dawn", "geo", "express")
HEADLINE_DISPLAY_LIMIT = 10
MAX_BULLETS = 3

REQUEST_HEADERS = {
    "Accept": "application/json",
    "User-Agent": "pakgpt-news/0.1",
}

PLAYER_COMMAND = "mpv --no-video --really-quiet"

RACE_LAST_COMPLETION = "last_completion"
RACE_LAST_INITIATED = "last_initiated"
RACE_POLICIES = (RACE_LAST_COMPLETION, RACE_LAST_INITIATED)

ENV_BACKEND_URL = "PAKGPT_BACKEND_URL"
ENV_HTTP_TIMEOUT = "PAKGPT_HTTP_TIMEOUT"
ENV_PLAYER = "PAKGPT_PLAYER"
ENV_RACE_POLICY = "PAKGPT_RACE_POLICY"

# --- Logging ---
logger = logging.getLogger("pakgpt")


def setup_logging(debug: bool = False) -> Optional[str]:
    """Configure logging.

    The terminal belongs to the TUI, so debug output goes to a file.
    """
    if not debug:
        logging.basicConfig(level=logging.CRITICAL, handlers=[logging.NullHandler()])
        return None

    ts = datetime.now().strftime("%Y%m%dT%H%M%S")
    pid = os.getpid()
    debug_path = f"/tmp/pakgpt_debug_{ts}_{pid}.log"

    logging.basicConfig(
        level=logging.DEBUG,
        filename=debug_path,
        filemode="a",
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )

    logger.debug("Debug logging enabled to %s", debug_path)
    return debug_path


@dataclass
class Settings:
    backend_url: str = DEFAULT_BACKEND_URL
    http_timeout: float = HTTP_TIMEOUT
    player_command: List[str] = field(default_factory=lambda: shlex.split(PLAYER_COMMAND))
    race_policy: str = RACE_LAST_COMPLETION


def _parse_timeout(raw: Optional[str]) -> float:
    if not raw:
        return HTTP_TIMEOUT
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r", ENV_HTTP_TIMEOUT, raw)
        return HTTP_TIMEOUT
    if value <= 0:
        logger.warning("Ignoring non-positive %s=%r", ENV_HTTP_TIMEOUT, raw)
        return HTTP_TIMEOUT
    return value


def _parse_race_policy(raw: Optional[str]) -> str:
    if not raw:
        return RACE_LAST_COMPLETION
    policy = raw.strip().lower()
    if policy not in RACE_POLICIES:
        logger.warning("Unknown race policy %r, using %s", raw, RACE_LAST_COMPLETION)
        return RACE_LAST_COMPLETION
    return policy


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build settings from the environment."""
    env = os.environ if environ is None else environ
    backend_url = (env.get(ENV_BACKEND_URL) or DEFAULT_BACKEND_URL).rstrip("/")
    player = env.get(ENV_PLAYER) or PLAYER_COMMAND
    settings = Settings(
        backend_url=backend_url,
        http_timeout=_parse_timeout(env.get(ENV_HTTP_TIMEOUT)),
        player_command=shlex.split(player),
        race_policy=_parse_race_policy(env.get(ENV_RACE_POLICY)),
    )
    logger.info("Using backend %s", settings.backend_url)
    return settings
