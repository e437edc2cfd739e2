"""
Command-Line Interface for log-narrator.

Usage Examples:
    # Follow the newest transcript of the current project and speak replies
    log-narrator watch

    # Follow a specific session of another project, with the control API
    log-narrator watch --project-dir /home/me/src/app --session-id 34c3... --api

    # Follow an explicit file
    log-narrator watch --log-file ./session.jsonl

    # Speak one text (checks backend + player end to end)
    log-narrator say "Hello from the narrator."

    # Show how a text would be chunked, without a backend
    log-narrator say "Long text..." --dry-run --json

    # Backend version and voice list
    log-narrator voices

    # Effective configuration (password redacted)
    log-narrator config

Global Options:
    --config PATH   Settings file (default: search order in core/config.py)
    -v / -vv        Raise log level to VERBOSE / DEBUG

Environment Variables:
    SEIKA_HOST, SEIKA_PORT, SEIKA_CID, ...   Backend overrides
    LOG_NARRATOR_SESSION_ID                  Session to follow
    LOG_NARRATOR_PROJECT_DIR                 Project whose transcript to follow
    LOG_NARRATOR_LOG_LEVEL                   1-4
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any, Dict, List, Optional

from log_narrator import __version__
from log_narrator.core.config import ConfigValidationError, NarratorConfig, load_settings
from log_narrator.core.errors import NarratorError
from log_narrator.core.logging import configure_logging, get_logger, info
from log_narrator.speech.backend import SeikaBackend
from log_narrator.speech.playback import build_player
from log_narrator.speech.scheduler import SpeechScheduler, compute_speed_override
from log_narrator.speech.segmenter import split_text


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="log-narrator",
        description="Speak assistant replies as they are appended to a transcript log",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", help="Settings file (YAML)")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="More log output (-v verbose, -vv debug)")

    sub = parser.add_subparsers(dest="command", required=True)

    watch = sub.add_parser("watch", help="Follow a transcript and speak assistant replies")
    watch.add_argument("-s", "--session-id", help="Session id (default: newest transcript)")
    watch.add_argument("-p", "--project-dir", help="Project directory (default: current directory)")
    watch.add_argument("--log-file", help="Follow this file instead of discovering one")
    watch.add_argument("--api", action="store_true", help="Also serve the control API")

    say = sub.add_parser("say", help="Speak one text")
    say.add_argument("text", help="Text to speak")
    say.add_argument("--dry-run", action="store_true", help="Show chunking without speaking")
    say.add_argument("--json", action="store_true", help="Print JSON summary")

    voices = sub.add_parser("voices", help="Show backend version and voices")
    voices.add_argument("--json", action="store_true", help="Print JSON")

    sub.add_parser("config", help="Print the effective configuration")

    return parser.parse_args(argv)


def _load_config(args: argparse.Namespace) -> NarratorConfig:
    """Settings file + environment, then command-line overrides."""
    settings = load_settings(args.config)
    if args.command == "watch":
        settings = settings.merged({
            "log": {
                "file": args.log_file,
                "session_id": args.session_id,
                "project_dir": args.project_dir,
            },
            "api": {"enabled": True if args.api else None},
        })
    return settings.get_config()


def _dry_run_summary(text: str, config: NarratorConfig) -> Dict[str, Any]:
    chunks = split_text(text, config.scheduler.max_chunk_chars)
    return {
        "ok": True,
        "dry_run": True,
        "text_len": len(text),
        "max_length": config.scheduler.max_chunk_chars,
        "speed_override": compute_speed_override(config.scheduler.base_speed, 0, len(text)),
        "chunks": chunks,
    }


async def _say(text: str, config: NarratorConfig) -> Dict[str, Any]:
    backend = SeikaBackend(config.backend)
    scheduler = SpeechScheduler(
        backend,
        build_player(config.playback),
        config.scheduler,
        preview_chars=config.logging.text_preview_chars,
    )
    try:
        scheduler.artifacts.ensure_dir()
        settled = await scheduler.enqueue(text)
    finally:
        await scheduler.close()
        await backend.aclose()
    return {
        "ok": settled.chunks_played > 0,
        "task_id": settled.task_id,
        "outcome": settled.outcome.value,
        "chunks_total": settled.chunks_total,
        "chunks_played": settled.chunks_played,
        "chunks_skipped": settled.chunks_skipped,
        "speed_override": settled.speed_override,
    }


async def _voices(config: NarratorConfig) -> Dict[str, Any]:
    backend = SeikaBackend(config.backend)
    try:
        version = await backend.health_check()
        found = await backend.list_voices()
    finally:
        await backend.aclose()
    return {
        "ok": True,
        "version": version,
        "voices": [{"id": v.id, "name": v.display_name} for v in found],
    }


async def _watch(config: NarratorConfig) -> None:
    from log_narrator.services.narrator import NarratorService

    log = get_logger("log-narrator.cli")
    service = NarratorService.from_config(config)
    path = await service.start()
    print(f"Watching {path} (backend {config.backend.base_url}, cid {config.backend.cid}). Ctrl+C to stop.")

    try:
        if config.api.enabled:
            import uvicorn

            from log_narrator.main import create_app

            info(log, "api_listening", host=config.api.host, port=config.api.port)
            server = uvicorn.Server(uvicorn.Config(
                create_app(service),
                host=config.api.host,
                port=config.api.port,
                log_level="warning",
            ))
            await server.serve()
        else:
            await asyncio.Event().wait()
    finally:
        await service.stop()


def _print_payload(payload: Dict[str, Any], as_json: bool) -> None:
    if as_json:
        print(json.dumps(payload, ensure_ascii=False))
    else:
        print(payload)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Returns:
        Exit code: 0 success, 1 runtime failure, 2 configuration error.
    """
    args = _parse_args(argv)

    try:
        config = _load_config(args)
    except (FileNotFoundError, ConfigValidationError) as e:
        print(f"configuration error: {e}", file=sys.stderr)
        return 2

    level = min(4, 2 + args.verbose) if args.verbose else config.logging.level
    configure_logging(level, force=True)

    if args.command == "config":
        print(json.dumps(config.to_dict(), indent=2, ensure_ascii=False))
        return 0

    try:
        if args.command == "say":
            if args.dry_run:
                _print_payload(_dry_run_summary(args.text, config), args.json)
                print("DRY_RUN_OK")
                return 0
            payload = asyncio.run(_say(args.text, config))
            _print_payload(payload, args.json)
            return 0 if payload["ok"] else 1

        if args.command == "voices":
            payload = asyncio.run(_voices(config))
            if args.json:
                _print_payload(payload, True)
            else:
                print(f"AssistantSeika {payload['version']}")
                for voice in payload["voices"]:
                    print(f"  {voice['id']:>6}  {voice['name']}")
            return 0

        asyncio.run(_watch(config))
        return 0
    except NarratorError as e:
        print(json.dumps(e.to_dict(), ensure_ascii=False), file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
