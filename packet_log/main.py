"""Command-line entry point: replay wire logs through a session logger."""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

import typer
import yaml

from .config import Config, load_config
from .core import SessionLogger, shutdown_shared_scheduler
from .models import JsonPacket
from .utils.logging_setup import configure_logging

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent / ".config.yml"

app = typer.Typer(help="Per-session packet logging for the proxy")


class ReplaySession:
    """Stand-in proxied session for records read back from a wire log."""

    def __init__(self, name: str, trace: bool = False):
        self.socket_address = name
        self.is_logging = trace


def read_wire_log(path: Path) -> Iterator[Tuple[bool, JsonPacket]]:
    """Yield ``(upstream, packet)`` for each record of a JSONL wire log.

    ``inbound`` records travel toward the server; everything else is client bound.
    Malformed lines are skipped with a warning.
    """
    with path.open("r", encoding="utf-8") as handle:
        for line_num, line in enumerate(handle, 1):
            if not line.strip():
                continue
            try:
                entry = json.loads(line)
            except json.JSONDecodeError as exc:
                logger.warning("Malformed JSON at line %d: %s", line_num, exc)
                continue
            if not isinstance(entry, dict) or "message" not in entry:
                logger.warning("Skipping line %d: no message field", line_num)
                continue

            message = entry["message"]
            if isinstance(message, str):
                try:
                    message = json.loads(message)
                except json.JSONDecodeError:
                    pass
            yield entry.get("direction") == "inbound", JsonPacket.from_message(message)


def _load(config_paths: Optional[List[Path]]) -> Config:
    return load_config(config_paths or [DEFAULT_CONFIG_PATH])


@app.command("replay")
def replay(
    wire_log: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSONL wire log to replay"),
    name: str = typer.Option("replay", "--name", "-n", help="Session display name"),
    config_paths: Optional[List[Path]] = typer.Option(
        None, "--config", "-c", help="Path to YAML config (can be specified multiple times)"
    ),
    sessions_dir: Optional[Path] = typer.Option(None, "--sessions-dir", help="Override system.sessions_dir"),
    json_lines: Optional[bool] = typer.Option(None, "--json/--no-json", help="Render payloads as JSON"),
    console: Optional[bool] = typer.Option(None, "--console/--no-console", help="Echo lines to stdout"),
    trace: bool = typer.Option(False, "--trace", help="Emit per-packet debug lines"),
) -> None:
    """Log every record of WIRE_LOG into a new session directory."""
    config = _load(config_paths)
    configure_logging("DEBUG" if trace else config.system.log_level)

    settings = config.packet_logging
    settings.logging_packets = True
    settings.log_to.file = True
    if json_lines is not None:
        settings.log_to_json = json_lines
    if console is not None:
        settings.log_to.console = console

    session_logger = SessionLogger(
        config,
        sessions_dir or Path(config.system.sessions_dir),
        name,
        int(time.time() * 1000),
    )
    session = ReplaySession(name, trace=trace)
    count = 0
    try:
        session_logger.start()
        for upstream, packet in read_wire_log(wire_log):
            session_logger.log_packet(session, packet, upstream)
            count += 1
    finally:
        session_logger.close()
        shutdown_shared_scheduler()

    logger.info("Replayed %d records from %s", count, wire_log)
    typer.echo(str(session_logger.log_path))


@app.command("show-config")
def show_config(
    config_paths: Optional[List[Path]] = typer.Option(
        None, "--config", "-c", help="Path to YAML config (can be specified multiple times)"
    ),
) -> None:
    """Print the effective configuration as YAML."""
    config = _load(config_paths)
    typer.echo(yaml.safe_dump(config.to_dict(), sort_keys=False))


def main() -> None:
    app()


if __name__ == "__main__":
    main()
