"""
UI components and display helpers using Rich.

Handles all terminal output formatting, panels, streaming display and the
log handler.
"""

import logging
from typing import Iterable, Optional

from rich.console import Console
from rich.live import Live
from rich.logging import RichHandler
from rich.markdown import Markdown
from rich.panel import Panel
from rich.style import Style
from rich.text import Text
from rich.theme import Theme

# Cyberpunk color scheme
CYBER_THEME = Theme({
    "cyan": "#00D9FF",
    "magenta": "#FF10F0",
    "neon_green": "#39FF14",
    "dim_cyan": "dim #00D9FF",
    "bright_white": "bright_white",
})

console = Console(theme=CYBER_THEME)

# Styles
STYLE_THINKING = Style(color="#00D9FF", dim=True)
STYLE_SUCCESS = Style(color="#39FF14")
STYLE_ERROR = Style(color="#FF10F0", bold=True)
STYLE_PROMPT = Style(color="#00D9FF", bold=True)
STYLE_TIMESTAMP = Style(color="#555555")

STAGE_LABELS = {
    "summarize": "summarizing...",
    "analyze": "drafting logical and creative answers...",
    "synthesize": "synthesizing...",
}


def setup_logging(level: str = "WARNING") -> None:
    """Route the logging module through the shared console."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, markup=False)],
        force=True,
    )


class StreamingResponse:
    """Accumulates streamed fragments and re-renders them as Markdown in a Live view."""

    def __init__(self, live: Optional[Live] = None):
        self.content = ""
        self.live = live

    def update(self, fragment: str) -> None:
        self.content += fragment
        if self.live:
            self.live.update(self.get_display())

    def get_display(self):
        return Markdown(self.content) if self.content else Text("")


def live_markdown() -> Live:
    return Live(Text(""), console=console, refresh_per_second=15, transient=False)


def display_thinking(stage: Optional[str] = None):
    """Display thinking indicator."""
    label = STAGE_LABELS.get(stage or "", "processing...")
    console.print(Text(label, style=STYLE_THINKING))


def display_welcome(ai_name: str = "Archie"):
    """Display welcome message with cyberpunk styling."""
    title = Text()
    title.append(ai_name.upper(), style="bold #00D9FF")

    subtitle = Text()
    subtitle.append("Type ", style="dim white")
    subtitle.append("exit", style="#FF10F0")
    subtitle.append(" to quit", style="dim white")

    panel = Panel(
        Text.assemble(title, "\n", subtitle),
        border_style="#00D9FF",
        padding=(0, 2),
    )
    console.print(panel)
    console.print()


def get_user_input(prompt_text: str = "> ") -> str:
    """Get user input with styled prompt. Returns 'exit' on Ctrl+C/Ctrl+D."""
    console.print()
    prompt = Text()
    prompt.append(prompt_text, style="bold #00D9FF")
    console.print(prompt, end="")
    try:
        return input().strip()
    except (KeyboardInterrupt, EOFError):
        console.print()
        return "exit"


def display_response(content: str):
    """Display assistant response as rendered markdown."""
    if content:
        console.print()
        console.print(Markdown(content))


def display_message(message: str):
    console.print(Text(message, style=STYLE_SUCCESS))


def display_error(message: str):
    console.print(Text(message, style=STYLE_ERROR))


def display_log(turns: Iterable):
    """Print logged turns: timestamp, request, response."""
    shown = False
    for turn in turns:
        shown = True
        console.print(Text(turn.timestamp.strftime("%d %b %y %H:%M"), style=STYLE_TIMESTAMP))
        console.print(Text(f"> {turn.request}", style=STYLE_PROMPT))
        console.print(Markdown(turn.response))
        console.print()
    if not shown:
        console.print(Text("No conversation logged today.", style="dim"))
