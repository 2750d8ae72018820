"""Terminal rendering for practice feedback, conversation and history."""

import logging
import threading
from typing import Iterable, List, Optional

from pubsub import pub
from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..audio.audio_pub import LEVEL_TOPIC
from ..models.analysis import AnalysisResult
from ..models.audio import LevelFrame
from ..models.conversation import ConversationMessage, Role
from ..models.grammar import TENSES, TenseRule
from ..models.history import HistoryEntry
from ..models.preferences import Preferences
from ..speech.base import Voice

logger = logging.getLogger(__name__)

BAR_CHARS = " ▁▂▃▄▅▆▇█"


def score_style(score: int) -> str:
    if score >= 80:
        return "bold green"
    if score >= 50:
        return "bold yellow"
    return "bold red"


def render_level_bars(frame: Optional[LevelFrame], columns: int = 32) -> Text:
    """Collapse a spectrum frame into a single row of block characters."""
    if frame is None or not frame.bins:
        return Text(BAR_CHARS[0] * columns)

    bins = frame.bins
    width = max(1, len(bins) // columns)
    chars = []
    for i in range(0, min(len(bins), width * columns), width):
        value = max(bins[i:i + width])
        chars.append(BAR_CHARS[value * (len(BAR_CHARS) - 1) // 255])
    return Text("".join(chars), style="cyan")


def render_feedback(transcript: str, analysis: Optional[AnalysisResult]) -> Panel:
    """Feedback card: transcript, score, corrections, tips and praise."""
    body: List = [Text(transcript or "(nothing captured yet)", style="italic")]

    if analysis is not None:
        body.append(Text(f"\nFluency score: {analysis.fluency_score}/100",
                         style=score_style(analysis.fluency_score)))

        if analysis.grammar_corrections:
            table = Table(show_header=True, header_style="bold", expand=True)
            table.add_column("You said", style="red")
            table.add_column("Better", style="green")
            table.add_column("Why")
            for correction in analysis.grammar_corrections:
                table.add_row(correction.original, correction.correction, correction.explanation)
            body.append(table)
        else:
            body.append(Text("✅ No grammar corrections", style="green"))

        for tip in analysis.tips:
            body.append(Text(f"💡 {tip}"))
        if analysis.positive_feedback:
            body.append(Text(f"👏 {analysis.positive_feedback}", style="bold blue"))

    return Panel(Group(*body), title="📝 Feedback", border_style="blue")


def render_message(message: ConversationMessage) -> Panel:
    if message.role is Role.USER:
        return Panel(Text(message.content), title="🧑 You", border_style="white")

    body: List = [Text(message.content, style="bold")]
    analysis = message.analysis
    if analysis is not None:
        body.append(Text(f"Fluency: {analysis.fluency_score}/100", style=score_style(analysis.fluency_score)))
        for correction in analysis.grammar_corrections:
            body.append(Text(f"✏️  {correction.original} → {correction.correction}", style="yellow"))
    return Panel(Group(*body), title="🤖 Partner", border_style="magenta")


def render_history(entries: Iterable[HistoryEntry]) -> Table:
    table = Table(title="Practice history", show_lines=False)
    table.add_column("ID", style="dim")
    table.add_column("When")
    table.add_column("Level")
    table.add_column("Scenario")
    table.add_column("Score", justify="right")
    table.add_column("Transcript", overflow="ellipsis", max_width=48)
    for entry in entries:
        score = entry.analysis.fluency_score
        table.add_row(
            str(entry.id),
            entry.timestamp[:19].replace("T", " "),
            entry.level.value,
            entry.roleplay,
            Text(str(score), style=score_style(score)),
            entry.transcript,
        )
    return table


def render_grammar_sheet(tenses: Iterable[TenseRule] = TENSES) -> Table:
    """Cheat sheet: one row per tense with its use, structure and an example."""
    table = Table(title="Cheat Sheet: Master Tenses", show_lines=True)
    table.add_column("Tense", style="bold")
    table.add_column("Use")
    table.add_column("Structure", style="dim")
    table.add_column("Example", style="italic")
    for tense in tenses:
        table.add_row(Text(tense.name, style=f"bold {tense.color}"), tense.usage,
                      tense.structure, f"\"{tense.example}\"")
    return table


def render_voices(voices: Iterable[Voice], selected: Optional[Voice] = None) -> Table:
    table = Table(title="English voices")
    table.add_column("", width=1)
    table.add_column("ID", style="dim", overflow="fold")
    table.add_column("Name")
    table.add_column("Language")
    for voice in voices:
        marker = "*" if selected is not None and voice.id == selected.id else ""
        table.add_row(marker, voice.id, voice.name, voice.lang)
    return table


class PracticeScreen:
    """Console front end around a rich Console."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def show_onboarding(self) -> None:
        self.console.print("🔑 No Groq API key configured.", style="bold yellow")
        self.console.print("Run [bold]fluentcoach configure --api-key gsk_...[/bold] to get started.")

    def show_preferences(self, preferences: Preferences) -> None:
        self.console.print(f"Key: {preferences.masked_key()}  "
                           f"Level: {preferences.level.value}  "
                           f"Scenario: {preferences.roleplay}", style="blue")

    def show_feedback(self, transcript: str, analysis: Optional[AnalysisResult]) -> None:
        self.console.print(render_feedback(transcript, analysis))

    def show_message(self, message: ConversationMessage) -> None:
        self.console.print(render_message(message))

    def show_history(self, entries: List[HistoryEntry]) -> None:
        if not entries:
            self.console.print("No practice history yet.", style="yellow")
            return
        self.console.print(render_history(entries))

    def show_grammar(self) -> None:
        self.console.print(render_grammar_sheet())

    def show_voices(self, voices: List[Voice], selected: Optional[Voice] = None) -> None:
        if not voices:
            self.console.print("No English voices installed; replies use the engine default.", style="yellow")
            return
        self.console.print(render_voices(voices, selected))
        self.console.print("Use [bold]fluentcoach configure --voice ID[/bold] to pick one. * marks the voice in use.")

    def show_error(self, error: Exception) -> None:
        self.console.print(f"❌ {error}", style="bold red")

    def show_info(self, message: str) -> None:
        self.console.print(message, style="green")


class LiveLevelView:
    """Shows spectrum bars for frames published on the level topic.

    Use as a context manager around a recording. Frames arrive on the
    audio thread; rich's Live handles the cross-thread refresh.
    """

    def __init__(self, console: Console, topic: str = LEVEL_TOPIC, refresh_per_second: int = 15):
        self.console = console
        self.topic = topic
        self.refresh_per_second = refresh_per_second
        self.latest: Optional[LevelFrame] = None
        self._lock = threading.Lock()
        self._live: Optional[Live] = None

    def on_frame(self, frame: LevelFrame) -> None:
        with self._lock:
            self.latest = frame
        if self._live is not None:
            self._live.update(self.render())

    def render(self) -> Text:
        with self._lock:
            frame = self.latest
        line = Text("🔴 ", style="red")
        line.append_text(render_level_bars(frame))
        line.append("  press Enter to stop", style="dim")
        return line

    def __enter__(self) -> "LiveLevelView":
        # pypubsub keeps weak references, so the listener lives as long as this view
        pub.subscribe(self.on_frame, self.topic)
        self._live = Live(self.render(), console=self.console,
                          refresh_per_second=self.refresh_per_second, transient=True)
        self._live.__enter__()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        pub.unsubscribe(self.on_frame, self.topic)
        live, self._live = self._live, None
        if live is not None:
            live.__exit__(exc_type, exc, tb)
