"""Command line interface for gphotos_uploader."""
from __future__ import annotations

import argparse
import asyncio
import logging
import os
import re
import signal
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Sequence, Tuple

from rich.logging import RichHandler

from . import __version__
from .cli_progress import OutcomeTimeline, render_configuration_summary, render_final_summary
from .exceptions import UploaderError
from .models import DEFAULT_DB_PATH, AlbumTarget, UploaderConfig
from .orchestrator import UploadOrchestrator
from .services import CredentialProvider, PhotosUploadClient, StatusStore

logger = logging.getLogger(__name__)

DEFAULT_LOG_DIR = Path.home() / ".cache" / "gphotos-uploader" / "logs"
LOG_MAX_BYTES = 5 * 1024 * 1024
LOG_BACKUP_COUNT = 5

_log_paths: Tuple[Optional[str], Optional[str]] = (None, None)


class CLIError(RuntimeError):
    """Raised when CLI validation/execution fails."""


def _get_log_paths() -> Tuple[Optional[str], Optional[str]]:
    """Return (run_log, error_log) configured by the last _setup_logging call."""
    return _log_paths


def _file_handler(path: Path, level: int) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        path, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUP_COUNT, encoding="utf-8"
    )
    handler.setLevel(level)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    return handler


def _setup_logging(debug: bool, silent: bool, log_level: Optional[str]) -> str:
    """
    Configure logging.

    Records always go to a run log and an error log under
    GPHOTOS_UPLOADER_LOG_DIR. The console stays silent unless --debug,
    --log-level or LOG_LEVEL is provided. Returns a string describing the
    effective console mode.
    """
    global _log_paths

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    logging.disable(logging.NOTSET)

    env_level = os.getenv("LOG_LEVEL")
    if debug:
        level = logging.DEBUG
    elif log_level:
        level = getattr(logging, log_level.upper(), logging.INFO)
    else:
        level = getattr(logging, (env_level or "INFO").upper(), logging.INFO)

    log_dir = Path(os.getenv("GPHOTOS_UPLOADER_LOG_DIR") or DEFAULT_LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)
    run_log = log_dir / "gphotos-uploader.log"
    error_log = log_dir / "gphotos-uploader.error.log"
    root_logger.addHandler(_file_handler(run_log, level))
    root_logger.addHandler(_file_handler(error_log, logging.WARNING))
    _log_paths = (str(run_log), str(error_log))

    root_logger.setLevel(level)
    # Third party chatter stays out of the run log unless debugging
    for noisy in ("httpx", "httpcore", "watchdog", "aiosqlite", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.DEBUG if debug else logging.WARNING)

    if silent or (not debug and not log_level and not env_level):
        return "silent"

    console_handler = RichHandler(
        rich_tracebacks=True,
        markup=False,
        show_time=True,
        show_path=False,
    )
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    console_handler.setLevel(level)
    root_logger.addHandler(console_handler)
    return logging.getLevelName(level)


def _strip_optional_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
        return value[1:-1]
    return value


def _load_env_file(path: Path, override: bool = False) -> None:
    if not path.exists():
        raise CLIError(f"env file not found: {path}")
    if not path.is_file():
        raise CLIError(f"env path is not a file: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CLIError(f"could not read env file {path}: {exc}") from exc

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].strip()
        if "=" not in line:
            continue

        key, value = line.split("=", 1)
        key = key.strip()
        if not key:
            continue

        value = _strip_optional_quotes(value.strip())
        if override or key not in os.environ:
            os.environ[key] = value


def _resolve_default_env_file() -> Optional[Path]:
    default_env = Path(".env")
    return default_env if default_env.exists() and default_env.is_file() else None


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gphotos-uploader",
        description="Upload files and watch directories, uploading new photos and videos.",
    )
    parser.add_argument("--auth", type=Path, default=Path("auth.json"), help="Authentication json file")
    parser.add_argument(
        "--upload",
        action="append",
        type=Path,
        default=[],
        metavar="PATH",
        help="File or directory to upload (repeatable)",
    )
    parser.add_argument("--album", default=None, help="Move new images to the album with this id")
    parser.add_argument("--album-name", default=None, help="Move new images to a new album with this name")
    parser.add_argument(
        "--max-concurrent",
        type=int,
        default=1,
        help="Number of max concurrent uploads (default 1)",
    )
    parser.add_argument(
        "--watch",
        action="append",
        type=Path,
        default=[],
        metavar="DIR",
        help="Directory to watch (repeatable)",
    )
    parser.add_argument(
        "--watch-recursively",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Start watching new directories in currently watched directories",
    )
    parser.add_argument(
        "--event-delay",
        type=float,
        default=3.0,
        help="Seconds to wait for more events on the same file before uploading it (default 3)",
    )
    parser.add_argument(
        "--ignore",
        action="append",
        default=[],
        metavar="REGEX",
        help="Pattern of paths to ignore (repeatable)",
    )
    parser.add_argument("--reupload", action="store_true", help="Re-upload the failed files")
    parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help=f"Status database (default from GPHOTOS_UPLOADER_DB or {DEFAULT_DB_PATH})",
    )
    parser.add_argument(
        "--all-files",
        action="store_true",
        help="Upload every file, not only images and videos",
    )
    parser.add_argument(
        "--no-interactive",
        action="store_true",
        help="Never prompt for credentials, fail instead",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Load environment variables from this .env file",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logs")
    parser.add_argument("--silent", action="store_true", help="Only print outcomes")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Explicit log level (DEBUG/INFO/WARNING/ERROR)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"gphotos-uploader {__version__}",
    )
    return parser


def _build_config(args: argparse.Namespace) -> UploaderConfig:
    if args.album and args.album_name:
        raise CLIError("use either --album or --album-name, not both")
    if args.max_concurrent < 1:
        raise CLIError("--max-concurrent must be a positive integer")
    if args.event_delay < 0:
        raise CLIError("--event-delay must not be negative")

    for pattern in args.ignore:
        try:
            re.compile(pattern)
        except re.error as exc:
            raise CLIError(f"invalid --ignore pattern {pattern!r}: {exc}") from exc

    for path in args.upload:
        if not path.expanduser().exists():
            raise CLIError(f"path to upload does not exist: {path}")
    for directory in args.watch:
        if not directory.expanduser().is_dir():
            raise CLIError(f"directory to watch does not exist: {directory}")

    db_path = args.db or os.getenv("GPHOTOS_UPLOADER_DB") or DEFAULT_DB_PATH

    return UploaderConfig(
        auth_file=args.auth.expanduser(),
        files_to_upload=tuple(args.upload),
        directories_to_watch=tuple(args.watch),
        album=AlbumTarget(album_id=args.album, album_name=args.album_name),
        max_concurrent_uploads=args.max_concurrent,
        watch_recursively=args.watch_recursively,
        event_delay=args.event_delay,
        ignore_patterns=tuple(args.ignore),
        reupload_failed=args.reupload,
        media_only=not args.all_files,
        db_path=Path(db_path).expanduser(),
    )


STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def _install_signal_handlers(stop: asyncio.Event) -> None:
    """
    The first SIGINT/SIGTERM sets ``stop``: uploads in flight finish, queued
    ones are abandoned. The handlers then step aside, so a second signal
    aborts with the default behaviour (KeyboardInterrupt for SIGINT).
    """
    loop = asyncio.get_running_loop()

    def _request_stop(sig: signal.Signals) -> None:
        logger.warning("Received %s, finishing in-flight uploads (signal again to abort)", sig.name)
        stop.set()
        for other in STOP_SIGNALS:
            loop.remove_signal_handler(other)

    def _request_stop_threadsafe(signum, frame) -> None:
        for other in STOP_SIGNALS:
            signal.signal(other, signal.default_int_handler if other == signal.SIGINT else signal.SIG_DFL)
        loop.call_soon_threadsafe(stop.set)

    for sig in STOP_SIGNALS:
        try:
            loop.add_signal_handler(sig, _request_stop, sig)
        except (NotImplementedError, RuntimeError):
            signal.signal(sig, _request_stop_threadsafe)


async def _run_uploader(config: UploaderConfig, interactive: bool) -> int:
    store = await StatusStore.open(config.db_path)
    try:
        credentials = await CredentialProvider(config.auth_file, interactive=interactive).obtain()
        try:
            stop = asyncio.Event()
            _install_signal_handlers(stop)
            timeline = OutcomeTimeline()

            async with UploadOrchestrator(config, store, PhotosUploadClient(), credentials) as orchestrator:
                orchestrator.on_completed(timeline.on_completed)
                orchestrator.on_ignored(timeline.on_ignored)
                orchestrator.on_error(timeline.on_error)
                await orchestrator.run(stop)

            summary = orchestrator.summary
            logger.info("Done (%s)", summary)
            render_final_summary(summary)
        finally:
            await credentials.aclose()
    finally:
        await store.close()
    return 0


def run_cli(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    used_env_file = args.env_file or _resolve_default_env_file()
    if used_env_file is not None:
        try:
            _load_env_file(Path(used_env_file))
        except CLIError as exc:
            print(f"ERROR: {exc}", file=sys.stderr)
            return 1

    effective_log_mode = _setup_logging(
        debug=args.debug,
        silent=args.silent,
        log_level=args.log_level,
    )

    if not args.upload and not args.watch and not args.reupload:
        parser.print_help()
        return 0

    try:
        config = _build_config(args)
    except CLIError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    run_log, _ = _get_log_paths()
    render_configuration_summary(
        {
            "Auth File": str(config.auth_file),
            "Upload": ", ".join(str(p) for p in config.files_to_upload) or "-",
            "Watch": ", ".join(str(p) for p in config.directories_to_watch) or "-",
            "Recursive": "yes" if config.watch_recursively else "no",
            "Album": config.album.album_id or config.album.album_name or "-",
            "Max Concurrent": config.max_concurrent_uploads,
            "Event Delay": f"{config.event_delay:g}s",
            "Ignore": ", ".join(config.ignore_patterns) or "-",
            "Re-upload Failed": "yes" if config.reupload_failed else "no",
            "Database": str(config.db_path),
            "Env File": str(used_env_file) if used_env_file else "-",
            "Logging": effective_log_mode,
            "Run Log": run_log or "-",
        }
    )

    try:
        return asyncio.run(_run_uploader(config, interactive=not args.no_interactive and sys.stdin.isatty()))
    except UploaderError as exc:
        logger.error("%s", exc)
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Cancelled.", file=sys.stderr)
        return 130


def main() -> None:
    raise SystemExit(run_cli())


if __name__ == "__main__":
    main()
