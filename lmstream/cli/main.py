"""
Main CLI entry point for lmstream.

Lists the models served by LM Studio and streams chat completions to the terminal.
"""

import argparse
import logging
import sys

from rich.console import Console

from lmstream import __version__

from .._exceptions import LMStreamError
from ..handler import LMStudioHandler
from .display import create_display
from .util import CANCELLED_EXIT, graceful_main, print_cancelled


def _models(args: argparse.Namespace, console: Console) -> int:
    handler = LMStudioHandler(base_url=args.base_url)
    models = handler.list_models()
    if not models:
        console.print(f"[yellow]No models found at {handler.base_url}[/yellow]")
        return 1
    for model_id in models:
        console.print(model_id, markup=False)
    return 0


def _chat(args: argparse.Namespace, console: Console) -> int:
    handler = LMStudioHandler(
        base_url=args.base_url, model_id=args.model, temperature=args.temperature
    )
    display = create_display(args.format, console=console)
    messages = [{"role": "user", "content": args.prompt}]

    stream = handler.create_message(args.system, messages)
    try:
        for event in stream:
            display.on_event(event)
    except KeyboardInterrupt:
        handler.cancel()
        stream.close()
        display.finish()
        print_cancelled()
        return CANCELLED_EXIT
    except LMStreamError as e:
        console.print(f"[red]❌ {e.message}[/red]")
        return 1

    display.finish()
    return 0


def _real_main(argv: list[str]) -> int:
    parser = argparse.ArgumentParser(
        prog="lmstream",
        description="Stream chat completions from a local LM Studio server",
    )
    parser.add_argument(
        "--base-url", help="LM Studio server URL (or set LMSTUDIO_BASE_URL environment variable)"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("models", help="List models served by LM Studio")

    chat = subparsers.add_parser("chat", help="Stream a chat completion")
    chat.add_argument("prompt", help="User message")
    chat.add_argument("--model", "-m", help="Model id (or set LMSTUDIO_MODEL_ID)")
    chat.add_argument("--system", "-s", default="You are a helpful assistant.", help="System prompt")
    chat.add_argument("--temperature", "-t", type=float, help="Sampling temperature")
    chat.add_argument(
        "--format",
        "-f",
        choices=["verbose", "compact", "json"],
        default="verbose",
        help="Output format",
    )

    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(name)s %(levelname)s %(message)s")

    if not args.command:
        parser.print_help()
        return 0

    console = Console()
    if args.command == "models":
        return _models(args, console)
    return _chat(args, console)


def main() -> None:
    """Main CLI entry point with graceful interrupt handling."""
    code = graceful_main(_real_main, sys.argv[1:])
    raise SystemExit(code)


if __name__ == "__main__":
    main()
