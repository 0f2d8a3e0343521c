"""Shared CLI error handling, logging setup and JSON output."""

import contextlib
import functools
import logging
import signal
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any, List

import typer
from pydantic import TypeAdapter
from rich.console import Console
from rich.logging import RichHandler

from video_prompts.exceptions import Cancelled, ToolUnavailable
from video_prompts.utils.cancel import CancelToken

EXIT_USER_ERROR = 50
EXIT_TOOL_MISSING = 51
EXIT_INTERRUPT = 130

console = Console()
stderr_console = Console(stderr=True)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging with Rich handler."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=stderr_console, rich_tracebacks=True, show_time=True)],
        force=True,
    )


def write_json_output(output: str | Path, data: Any) -> Path:
    """Write a pydantic model (or a list of them) as indented JSON."""
    path = Path(output)
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(data, list):
        adapter = TypeAdapter(List[type(data[0])]) if data else TypeAdapter(list)
    else:
        adapter = TypeAdapter(type(data))
    payload = adapter.dump_json(data, indent=2, by_alias=True)
    path.write_bytes(payload)
    return path


def cli_error_handler(func: Callable) -> Callable:
    """Wrap a CLI command to catch common exceptions with consistent exit codes.

    Module-specific exceptions should be caught inside the wrapped function
    before they bubble up to this handler.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (typer.Exit, SystemExit):
            raise
        except (KeyboardInterrupt, Cancelled):
            stderr_console.print("\n[bold yellow]Interrupted by user[/bold yellow]")
            raise typer.Exit(code=EXIT_INTERRUPT)
        except ToolUnavailable as e:
            stderr_console.print(f"[bold red]Error:[/bold red] {e}")
            raise typer.Exit(code=EXIT_TOOL_MISSING)
        except (FileNotFoundError, FileExistsError, ValueError, RuntimeError) as e:
            stderr_console.print(f"[bold red]Error:[/bold red] {e}")
            raise typer.Exit(code=EXIT_USER_ERROR)
        except Exception as e:
            stderr_console.print(f"[bold red]Unexpected error:[/bold red] {e}")
            raise typer.Exit(code=EXIT_USER_ERROR)

    return wrapper


@contextlib.contextmanager
def cancel_on_interrupt() -> Iterator[CancelToken]:
    """Turn Ctrl-C into a cancellation request for the duration of the block.

    The request in flight finishes and the batch stops before the next one,
    so the caller still gets the results gathered so far.
    """
    cancel = CancelToken()

    def _request_cancel(signum, frame):
        stderr_console.print("\n[bold yellow]Cancelling after the current request...[/bold yellow]")
        cancel.cancel()

    previous = signal.signal(signal.SIGINT, _request_cancel)
    try:
        yield cancel
    finally:
        signal.signal(signal.SIGINT, previous)
