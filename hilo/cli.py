"""
CLI interface for conversation summarization.

Usage:
    hilo add assistant "The ship leaves port at dawn."
    hilo status
    hilo archive
"""

import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from .api import Summarizer
from .config import get_default_store_path, load_or_create_config, settings_to_dict
from .logging_config import configure_quiet_mode, enable_debug_mode
from .types import Role

# Configure quiet mode by default (suppress verbose library output)
# Set HILO_VERBOSE=1 to enable debug mode via environment
if os.environ.get("HILO_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        print(f"hilo {version('hilo-summary')}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_json_output = False
_store_override: Optional[Path] = None
_conversation = "default"


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _store_callback(value: Optional[Path]):
    global _store_override
    _store_override = value


def _conversation_callback(value: Optional[str]):
    global _conversation
    _conversation = value or "default"


app = typer.Typer(
    name="hilo",
    help="Two-tier incremental summarization of conversation logs.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output as JSON",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
    store: Annotated[Optional[Path], typer.Option(
        "--store", "-s",
        envvar="HILO_STORE_PATH",
        help="Path to the store directory (default: ~/.hilo/)",
        callback=_store_callback,
        is_eager=True,
    )] = None,
    conversation: Annotated[Optional[str], typer.Option(
        "--conversation", "-c",
        help="Conversation to work on (default: 'default')",
        callback=_conversation_callback,
        is_eager=True,
    )] = None,
):
    """Two-tier incremental summarization of conversation logs."""


def _store_path() -> Path:
    if _store_override is not None:
        return _store_override.expanduser().resolve()
    return get_default_store_path()


def _get_summarizer() -> Summarizer:
    """Open the summarizer for the selected store and conversation."""
    import atexit

    try:
        s = Summarizer(_store_override, _conversation)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    atexit.register(s.close)
    return s


def _run_queue(s: Summarizer) -> None:
    """Drain queued work before the command returns."""
    asyncio.run(s.wait_idle())


def _echo_json(data) -> None:
    typer.echo(json.dumps(data, indent=2))


def _echo_queue_result(s: Summarizer) -> None:
    stats = s.queue.stats()
    if _json_output:
        _echo_json(stats)
    else:
        typer.echo(
            f"processed {stats['processed']}, skipped {stats['skipped']}, "
            f"failed {stats['failed']}"
        )


def _preview(text: str, width: int = 70) -> str:
    line = " ".join(text.split())
    return line if len(line) <= width else line[:width - 3] + "..."


# -----------------------------------------------------------------------------
# Turns
# -----------------------------------------------------------------------------

@app.command()
def add(
    role: Annotated[Role, typer.Argument(help="Turn role: user, assistant or system")],
    text: Annotated[Optional[str], typer.Argument(
        help="Turn text (read from stdin if omitted)"
    )] = None,
):
    """Append a turn to the conversation and summarize it."""
    if text is None:
        if sys.stdin.isatty():
            typer.echo("Error: no text given", err=True)
            raise typer.Exit(1)
        text = sys.stdin.read()
    s = _get_summarizer()
    turn = s.add_turn(role, text)
    _run_queue(s)
    if _json_output:
        _echo_json({"turn_id": turn.id, "role": turn.role.value, **s.queue.stats()})
    else:
        typer.echo(f"turn {turn.id} ({turn.role.value})")


@app.command()
def turns(
    limit: Annotated[int, typer.Option(
        "--limit", "-n",
        help="Show only the most recent turns"
    )] = 0,
):
    """List turns and whether each is shown verbatim."""
    s = _get_summarizer()
    listed = s.transcript.list_turns()
    if limit > 0:
        listed = listed[-limit:]
    if _json_output:
        _echo_json([
            {"id": t.id, "role": t.role.value, "hidden": t.hidden, "text": t.text}
            for t in listed
        ])
        return
    for t in listed:
        flag = "hidden" if t.hidden else "shown"
        typer.echo(f"{t.id:5d} {t.role.value:9s} {flag:6s} {_preview(t.text)}")


# -----------------------------------------------------------------------------
# Summarization
# -----------------------------------------------------------------------------

@app.command()
def summarize(
    turn_id: Annotated[Optional[int], typer.Argument(
        help="Turn to summarize (default: latest)"
    )] = None,
):
    """Generate (or regenerate) a turn's mini-summary."""
    s = _get_summarizer()
    queued = s.request_mini_summary(turn_id)
    if queued is None:
        typer.echo("Error: no such turn", err=True)
        raise typer.Exit(1)
    _run_queue(s)
    _echo_queue_result(s)


@app.command()
def archive():
    """Check whether the current volume is complete and archive it."""
    s = _get_summarizer()
    s.request_volume_check()
    _run_queue(s)
    _echo_queue_result(s)


@app.command()
def backfill(
    start: Annotated[Optional[int], typer.Option(
        "--start",
        help="First turn id (default: ignore_turns setting)"
    )] = None,
    end: Annotated[Optional[int], typer.Option(
        "--end",
        help="Last turn id (default: latest)"
    )] = None,
):
    """Summarize assistant turns that have no mini-summary yet."""
    s = _get_summarizer()
    count = s.backfill(start, end)
    if count == 0:
        typer.echo("Nothing to backfill", err=True)
        return
    _run_queue(s)
    _echo_queue_result(s)


@app.command()
def sync():
    """Recompute which turns are shown and which summaries are injected."""
    s = _get_summarizer()
    result = s.sync_visibility()
    if _json_output:
        _echo_json({"turns_changed": result.turns_changed,
                    "entries_changed": result.entries_changed})
    else:
        typer.echo(f"{result.turns_changed} turns, {result.entries_changed} entries changed")


@app.command()
def reposition():
    """Move summary entries to the depth/order the settings give them."""
    s = _get_summarizer()
    moved = s.reposition_entries()
    typer.echo(f"{moved} entries moved")


# -----------------------------------------------------------------------------
# Inspection
# -----------------------------------------------------------------------------

@app.command()
def status():
    """Show summarization progress."""
    s = _get_summarizer()
    info = s.status()
    if _json_output:
        _echo_json(info)
        return
    typer.echo(f"conversation: {info['conversation']}")
    typer.echo(f"collection:   {info['collection']}{'' if info['bound'] else ' (missing)'}")
    typer.echo(f"latest turn:  {info['latest_turn_id']}")
    typer.echo(f"volume:       {info['current_volume_number']} (archived {len(info['volumes'])})")
    if info["bound"]:
        typer.echo(
            f"summaries:    {info['mini_summaries']} "
            f"({info['unarchived_summaries']} unarchived, "
            f"{info['enabled_summaries']} injected, {info['placeholders']} pending)"
        )


@app.command()
def notes(
    show_all: Annotated[bool, typer.Option(
        "--all", "-a",
        help="Include disabled entries"
    )] = False,
):
    """List summary entries in injection order."""
    s = _get_summarizer()
    if not s.notebook.bound:
        typer.echo("No note collection for this conversation", err=True)
        raise typer.Exit(1)
    entries = sorted(s.notebook.entries(), key=lambda e: (e.position.depth, e.position.order))
    if not show_all:
        entries = [e for e in entries if e.enabled]
    if _json_output:
        _echo_json([
            {"name": e.name.render(), "enabled": e.enabled, "depth": e.position.depth,
             "order": e.position.order, "content": e.content}
            for e in entries
        ])
        return
    for e in entries:
        mark = "+" if e.enabled else "-"
        typer.echo(f"{mark} {e.name.render():32s} {_preview(e.content, 60)}")


@app.command()
def volumes():
    """Show archived volumes."""
    s = _get_summarizer()
    entries = s.notebook.volumes() if s.notebook.bound else []
    if _json_output:
        _echo_json([
            {"volume": e.name.number, "start": e.name.start, "end": e.name.end,
             "content": e.content}
            for e in entries
        ])
        return
    if not entries:
        typer.echo("No volumes yet", err=True)
        return
    for e in entries:
        typer.echo(f"--- volume {e.name.number}: turns {e.name.start}-{e.name.end} ---")
        typer.echo(e.content)
        typer.echo("")


# -----------------------------------------------------------------------------
# Configuration
# -----------------------------------------------------------------------------

@app.command()
def config(
    path: Annotated[bool, typer.Option(
        "--path",
        help="Print only the config file path"
    )] = False,
):
    """Show the store configuration."""
    s = _get_summarizer()
    cfg = s.config
    if path:
        typer.echo(str(cfg.config_path))
        return
    data = {
        "path": str(cfg.config_path),
        "generation": {"name": cfg.generation.name,
                       **{k: v for k, v in cfg.generation.params.items() if k != "api_key"}},
        "fallback": cfg.fallback.name if cfg.fallback else None,
        "settings": settings_to_dict(cfg.settings),
    }
    if _json_output:
        _echo_json(data)
        return
    typer.echo(f"config:     {data['path']}")
    typer.echo(f"generation: {cfg.generation.name}")
    typer.echo(f"fallback:   {data['fallback'] or '-'}")
    for key, value in data["settings"].items():
        if isinstance(value, (list, dict)):
            continue
        typer.echo(f"  {key} = {value}")


@app.command()
def models(
    base_url: Annotated[Optional[str], typer.Option(
        "--base-url",
        help="OpenAI-compatible endpoint (default: [generation] base_url)"
    )] = None,
    api_key: Annotated[Optional[str], typer.Option(
        "--api-key",
        envvar="HILO_OPENAI_API_KEY",
        help="API key for the endpoint (default: [generation] api_key)"
    )] = None,
):
    """List models served by an OpenAI-compatible endpoint."""
    from .providers.llm import list_openai_models

    params = {}
    if base_url is None or api_key is None:
        params = load_or_create_config(_store_path()).generation.params
    base_url = base_url or params.get("base_url") or "https://api.openai.com/v1"
    api_key = api_key or params.get("api_key") or os.environ.get("OPENAI_API_KEY", "")
    try:
        ids = list_openai_models(base_url, api_key)
    except RuntimeError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    if _json_output:
        _echo_json(ids)
        return
    for model_id in ids:
        typer.echo(model_id)


def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        from .errors import log_exception
        log_path = log_exception(e, context="hilo CLI", store_path=_store_override)
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
