#!/usr/bin/env python3
# -*- coding: utf-8 -*-
from __future__ import annotations

import argparse
import logging
import shlex
import sys

from .app import NewsApp
from .config import RACE_POLICIES, load_settings, setup_logging

logger = logging.getLogger("pakgpt")


# --- Entrypoint ---
def main() -> None:
    parser = argparse.ArgumentParser(description="PakGPT News TUI Client")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--backend-url", type=str, help="Base URL of the news service")
    parser.add_argument(
        "--race-policy",
        choices=RACE_POLICIES,
        help="Which of two overlapping requests wins: the last to finish or the last started",
    )
    parser.add_argument("--player", type=str, help="Audio player command, e.g. 'ffplay -nodisp -autoexit'")
    args = parser.parse_args()

    debug_path = setup_logging(args.debug)
    if debug_path:
        print(f"Debug logging enabled: {debug_path}", file=sys.stderr)

    settings = load_settings()
    if args.backend_url:
        settings.backend_url = args.backend_url.rstrip("/")
    if args.race_policy:
        settings.race_policy = args.race_policy
    if args.player:
        settings.player_command = shlex.split(args.player)

    logger.info("Using backend %s, race policy %s", settings.backend_url, settings.race_policy)

    try:
        app = NewsApp(settings=settings)
        app.run()
    except Exception as e:
        logger.exception("Application crashed: %s", e)
        print(f"Application crashed: {e}", file=sys.stderr)


if __name__ == "__main__":
    main()
