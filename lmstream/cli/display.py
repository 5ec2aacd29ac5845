"""
CLI display components for streaming chat output.

Provides different output formats for rendering output events:
- VerboseDisplay: Rich terminal UI with dimmed reasoning, tool calls and usage
- CompactDisplay: Answer text only
- JsonDisplay: One JSON object per event for scripting and debugging
"""

from abc import ABC, abstractmethod
import json

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.text import Text

from ..streaming import (
    ReasoningEvent,
    StreamAccumulator,
    StreamEvent,
    TextEvent,
    ToolCallEndEvent,
    ToolCallPartialEvent,
    UsageEvent,
)


class StreamDisplay(ABC):
    """Base class for stream display renderers."""

    def __init__(self, console: Console | None = None) -> None:
        self.accumulator = StreamAccumulator()
        self.console = console or Console()

    @abstractmethod
    def on_event(self, event: StreamEvent) -> None:
        """Handle one output event."""

    def finish(self) -> None:
        """Called after the last event, or after cancellation."""


class CompactDisplay(StreamDisplay):
    """Compact display showing only the answer text."""

    def on_event(self, event: StreamEvent) -> None:
        self.accumulator.process(event)
        if isinstance(event, TextEvent):
            self.console.print(event.text, end="", markup=False, highlight=False)

    def finish(self) -> None:
        if self.accumulator.get_text():
            self.console.print()


class VerboseDisplay(StreamDisplay):
    """
    Verbose display with rich terminal UI.

    Shows:
    - Real-time text streaming
    - Reasoning in a dimmed style
    - Tool calls once their arguments are complete
    - Token usage
    """

    def __init__(self, console: Console | None = None) -> None:
        super().__init__(console=console)
        self.thinking_active = False

    def on_event(self, event: StreamEvent) -> None:
        self.accumulator.process(event)

        if isinstance(event, ReasoningEvent):
            if not self.thinking_active:
                self.console.print("\n[dim cyan]🧠 Thinking...[/dim cyan]")
                self.thinking_active = True
            self.console.print(event.text, end="", style="dim italic cyan", markup=False)
            return

        if self.thinking_active and not isinstance(event, UsageEvent):
            self.console.print()
            self.thinking_active = False

        if isinstance(event, TextEvent):
            self.console.print(event.text, end="", style="white", markup=False, highlight=False)
            return

        if isinstance(event, ToolCallPartialEvent) and event.name:
            self.console.print(f"\n[bold cyan]⚡ Tool call:[/bold cyan] [yellow]{event.name}[/yellow]")
            return

        if isinstance(event, ToolCallEndEvent):
            call = self.accumulator.tool_calls[event.index]
            try:
                arguments = json.dumps(call.parsed_arguments(), indent=2)
            except ValueError:
                arguments = call.arguments
            self.console.print(
                Panel(
                    Text(arguments or "{}"),
                    title=f"[yellow]{call.name or 'tool'}[/yellow] #{event.index}",
                    border_style="yellow",
                )
            )
            return

        if isinstance(event, UsageEvent):
            self.console.print(
                f"\n[dim]Usage: input={event.input_tokens}, output={event.output_tokens}[/dim]"
            )

    def finish(self) -> None:
        if self.thinking_active:
            self.console.print()
            self.thinking_active = False
        text = self.accumulator.get_text()
        if text.strip():
            self.console.print()
            self.console.print(
                Panel(Markdown(text, code_theme="monokai"), title="[cyan]Response[/cyan]", border_style="cyan")
            )


class JsonDisplay(StreamDisplay):
    """
    JSON display for raw event streaming.

    Outputs each event as a JSON line for machine consumption.
    """

    def on_event(self, event: StreamEvent) -> None:
        print(json.dumps(event.to_dict()), flush=True)


def create_display(format: str = "verbose", console: Console | None = None) -> StreamDisplay:
    """
    Factory function to create appropriate display.

    Args:
        format: Display format ("verbose", "compact", or "json")
    """
    if format == "compact":
        return CompactDisplay(console)
    elif format == "json":
        return JsonDisplay(console)
    else:
        return VerboseDisplay(console)
