"""Application entry point for the tgcrawler chat scanner."""

from __future__ import annotations

import argparse
import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from art import tprint
from dotenv import load_dotenv

import settings
from adapters.json_report import report_path, write_report
from adapters.progress import RichProgressReporter
from adapters.sqlite_checkpoints import SQLiteCheckpointStore
from adapters.telegram_platform import TelethonPlatform
from client import authorize, build_client
from core.errors import AuthExpiredError, CrawlerError
from core.models import normalize_handle
from core.scanner import ChatScanner, ScanResult

NAME = "TGCRAWLER"
FONT = "tarty-1"

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INTERRUPTED = 130


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", False):
        return []
    values = []
    for name in redact_cfg.get("patterns", []):
        value = os.getenv(name)
        if value:
            values.append(value)
    return sorted(set(values), key=len, reverse=True)


def _configure_logging() -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", False):
        return

    load_dotenv()
    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    formatter = _RedactingFormatter(_collect_redaction_values(config), fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    # Console logging interleaves with the progress display, so it is opt-in.
    if config.get("console", False):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/tgcrawler.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        file_handler = RotatingFileHandler(
            path,
            maxBytes=int(file_cfg.get("max_bytes", 5 * 1024 * 1024)),
            backupCount=int(file_cfg.get("backup_count", 5)),
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)


def _output_path(args: argparse.Namespace, chat_key: str, partial: bool) -> Path:
    if args.output:
        path = Path(args.output)
        return path.with_name(f"{path.stem}.partial{path.suffix or '.json'}") if partial else path
    return report_path(settings.OUTPUT_DIR, chat_key, partial=partial)


def _report(args: argparse.Namespace, chat_key: str, result: ScanResult) -> int:
    """Write the (possibly partial) report and return the exit code."""

    logger = logging.getLogger(__name__)
    path = write_report(
        _output_path(args, chat_key, partial=not result.completed),
        result.records,
        resolved_only=settings.RESOLVED_ONLY,
    )
    if result.warnings:
        print(f"Skipped {len(result.warnings)} malformed entities (see log for details).")

    if result.completed:
        print(
            f"Found {len(result.records)} identities from {result.messages_processed} messages. "
            f"Saved to {path}"
        )
        return EXIT_OK

    reason = "interrupted" if isinstance(result.failure, KeyboardInterrupt) else result.failure
    print(f"Scan stopped after {result.messages_processed} messages ({reason}).")
    print(f"Partial results ({len(result.records)} identities) saved to {path}")
    logger.warning("Partial report for %s written to %s", chat_key, path)
    if isinstance(result.failure, KeyboardInterrupt):
        return EXIT_INTERRUPTED
    return EXIT_FAILED


def _run(args: argparse.Namespace) -> int:
    _print_banner()
    _configure_logging()
    logger = logging.getLogger(__name__)

    chat_key = normalize_handle(args.chat)
    if not chat_key:
        print("A chat handle is required.")
        return EXIT_FAILED
    logger.info("Starting scan of %s", chat_key)

    checkpoints: Optional[SQLiteCheckpointStore] = None
    if settings.CHECKPOINTS_ENABLED:
        checkpoints = SQLiteCheckpointStore(settings.CHECKPOINT_DB_PATH)
        checkpoints.init_db()
        if args.restart:
            checkpoints.clear(chat_key)
            logger.info("Checkpoint for %s cleared", chat_key)

    client = build_client()
    scanners: list[ChatScanner] = []

    async def _scan() -> Optional[ScanResult]:
        print("Connecting to Telegram servers...")
        await client.connect()
        try:
            await authorize(client)
            platform = TelethonPlatform(client)
            try:
                chat = await platform.resolve_chat(chat_key)
            except AuthExpiredError:
                raise
            except CrawlerError as exc:
                logger.error("Could not resolve chat %s: %s", chat_key, exc)
                print(f"Could not find a chat with the username {args.chat}")
                return None

            with RichProgressReporter() as progress:
                scanner = ChatScanner(
                    platform,
                    chat,
                    chat_key,
                    settings.TRAVERSAL,
                    settings.RESOLVER,
                    checkpoints=checkpoints,
                    progress=progress,
                )
                scanners.append(scanner)
                return await scanner.scan()
        finally:
            await client.disconnect()

    try:
        result = client.loop.run_until_complete(_scan())
    except AuthExpiredError as exc:
        logger.error("Session is not authorized: %s", exc)
        print("The Telegram session has expired. Log in again and rerun.")
        return EXIT_FAILED
    except KeyboardInterrupt as exc:
        if not scanners:
            print("Interrupted.")
            return EXIT_INTERRUPTED
        # Whatever the store holds was recorded whole; the checkpoint
        # keeps the last complete batch for the next run.
        result = scanners[0].result(completed=False, failure=exc)

    if result is None:
        return EXIT_FAILED
    return _report(args, chat_key, result)


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(
        prog="tgcrawler",
        description="Count handle mentions and invite links across a chat's history.",
    )
    parser.add_argument("chat", help="Handle (or t.me link) of the chat to scan")
    parser.add_argument(
        "-o",
        "--output",
        help="Report path (default: <chat>.json in the configured output directory)",
    )
    parser.add_argument(
        "--restart",
        action="store_true",
        help="Discard any saved checkpoint and scan from the first message",
    )

    args = parser.parse_args(argv)
    raise SystemExit(_run(args))


if __name__ == "__main__":
    main()
