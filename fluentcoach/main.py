"""Main application entry point for FluentCoach."""

import asyncio
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional

import click

from .analysis import AnalysisClient, ChatCompletionEngine, ProxyAnalysisClient
from .analysis.analyzer import BaseAnalysisClient
from .audio import AudioCapture, AudioPublisher, LevelMeter
from .config import FluentCoachConfig
from .errors import InvalidCredential, PermissionDenied, PracticeError, SpeechUnavailable
from .models.conversation import Role
from .models.preferences import Level, KNOWN_ROLEPLAYS, normalize_roleplay
from .services import PracticeService
from .speech import AbstractSpeaker, Pyttsx3Speaker, select_voice
from .storage import CredentialStore, KeyValueStore, SessionHistoryStore
from .transcription import GroqTranscriber, ProxyTranscriber
from .transcription.base import AbstractTranscriber
from .ui.practice_screen import LiveLevelView, PracticeScreen

logger = logging.getLogger(__name__)


class App:
    """Wires configuration, storage and the practice pipeline together."""

    def __init__(self, config_path: Optional[str] = None, log_level: Optional[str] = None):
        self.config = FluentCoachConfig(config_path)
        self.proxy_route = self.config.uses_proxy()
        setup_logging(self.config, log_level or self.config.get('logging.level', 'INFO'))

        data_dir = self.config.get_data_directory()
        self.store = KeyValueStore(str(Path(data_dir) / "store"))
        self.credentials = CredentialStore(self.store, key_prefix=self.config.get('credentials.key_prefix', 'gsk_'))
        self.history = SessionHistoryStore(self.store, capacity=int(self.config.get('history.capacity', 20)))
        self.screen = PracticeScreen()

    def build_transcriber(self) -> AbstractTranscriber:
        timeout = self.config.get_timeout_seconds()
        if self.proxy_route:
            return ProxyTranscriber(self.config.get('pipeline.proxy_url'), timeout_seconds=timeout)
        return GroqTranscriber(api_base=self.config.get('provider.api_base'),
                               model=self.config.get('provider.transcription_model'),
                               timeout_seconds=timeout)

    def build_analyzer(self) -> BaseAnalysisClient:
        timeout = self.config.get_timeout_seconds()
        if self.proxy_route:
            return ProxyAnalysisClient(self.config.get('pipeline.proxy_url'), timeout_seconds=timeout)
        engine = ChatCompletionEngine(api_base=self.config.get('provider.api_base'),
                                      model=self.config.get('provider.analysis_model'),
                                      timeout_seconds=timeout)
        return AnalysisClient(engine, temperature=float(self.config.get('provider.temperature', 0.3)))

    def build_speaker(self) -> Optional[AbstractSpeaker]:
        if not self.config.get('speech.enabled', True):
            logger.info("Speech output disabled in config")
            return None
        return Pyttsx3Speaker(rate_factor=float(self.config.get('speech.rate_factor', 0.95)),
                              driver_name=self.config.get('speech.driver'))

    def build_service(self, speak_replies: bool = False) -> PracticeService:
        """Create a practice service over fresh preferences and a new capture."""
        logger.info("Initializing services...")
        sample_rate = self.config.get('audio.sample_rate', 16000)
        chunk_size = self.config.get('audio.chunk_size', 1024)
        channels = self.config.get('audio.channels', 1)
        logger.info(f"Audio settings: {sample_rate}Hz, {chunk_size} samples/chunk, {channels} channels")

        publisher = AudioPublisher()
        meter = LevelMeter(publisher.publish_level,
                           fft_size=int(self.config.get('audio.fft_size', 256)),
                           refresh_hz=float(self.config.get('audio.refresh_hz', 30)))
        capture = AudioCapture(publisher=publisher, level_meter=meter,
                               sample_rate=sample_rate, chunk_size=chunk_size, channels=channels)

        return PracticeService(
            preferences=self.credentials.load(),
            capture=capture,
            transcriber=self.build_transcriber(),
            analyzer=self.build_analyzer(),
            history=self.history,
            persist_conversation=bool(self.config.get('history.persist_conversation', False)),
            speaker=self.build_speaker() if speak_replies else None,
        )


def setup_logging(config, level: str = "INFO") -> None:
    """Set up logging configuration from YAML config."""
    log_file_path = config.get('logging.file_path', 'data/logs/fluentcoach.log')
    console_output = config.get('logging.console_output', True)

    Path(log_file_path).parent.mkdir(parents=True, exist_ok=True)

    handlers = []

    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    ))
    handlers.append(file_handler)

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.WARNING)  # Only show warnings and above on console
        console_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
        handlers.append(console_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger.info("=" * 50)
    logger.info("FluentCoach starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("=" * 50)


async def _record_turn(service: PracticeService, screen: PracticeScreen) -> bool:
    """Record until Enter. Returns False if recording could not start."""
    try:
        await service.start_recording()
    except PermissionDenied as e:
        screen.show_error(e)
        return False

    with LiveLevelView(screen.console):
        await asyncio.to_thread(screen.console.input, "")
    return True


async def _practice_loop(service: PracticeService, screen: PracticeScreen) -> None:
    screen.show_preferences(service.preferences)
    screen.console.print("Press [bold green]Enter[/bold green] to record, "
                         "[bold blue]a[/bold blue] to analyze now, [bold red]q[/bold red] to quit.")
    try:
        while True:
            command = (await asyncio.to_thread(screen.console.input, "> ")).strip().lower()
            if command == "q":
                break
            if command == "a":
                await service.analyze_transcript()
            elif command == "":
                if not await _record_turn(service, screen):
                    continue
                screen.console.print("📝 Transcribing and analyzing...", style="blue")
                await service.practice_turn()
            else:
                screen.console.print(f"Unknown command: {command}", style="red")
                continue

            if service.last_error is not None:
                screen.show_error(service.last_error)
            screen.show_feedback(service.transcript, service.analysis)
    finally:
        await service.close()


async def _converse_loop(service: PracticeService, screen: PracticeScreen) -> None:
    screen.show_preferences(service.preferences)
    screen.console.print("Type a message, or press [bold green]Enter[/bold green] to speak. "
                         "[bold blue]r[/bold blue] replays the last reply, [bold red]q[/bold red] quits.")
    try:
        while True:
            line = (await asyncio.to_thread(screen.console.input, "🧑 ")).strip()
            if line.lower() == "q":
                break
            if line.lower() == "r":
                if await service.replay_last_reply() is None:
                    screen.console.print("No reply to replay yet.", style="yellow")
                continue
            if line:
                reply = await service.send_message(line, speak=False)
            else:
                if not await _record_turn(service, screen):
                    continue
                seen = len(service.messages)
                reply = await service.converse_turn(speak=False)
                # The spoken turn was never typed, so echo its transcript
                for message in service.messages[seen:]:
                    if message.role is Role.USER:
                        screen.show_message(message)

            if reply is not None:
                screen.show_message(reply)
                await service.speak(reply.content)
            elif service.last_error is not None:
                screen.show_error(service.last_error)
    finally:
        await service.close()


async def _analyze_once(service: PracticeService, text: str) -> None:
    try:
        service.add_transcript(text)
        await service.analyze_transcript()
    finally:
        await service.close()


async def _list_voices(speaker: AbstractSpeaker):
    try:
        return await speaker.list_voices()
    finally:
        await speaker.close()


def _service_or_onboarding(app: App, speak_replies: bool = False) -> Optional[PracticeService]:
    if not app.credentials.has_credential():
        app.screen.show_onboarding()
        return None
    return app.build_service(speak_replies=speak_replies)


@click.group()
@click.option("--config", "config_path", type=click.Path(dir_okay=False),
              help="Path to configuration YAML file")
@click.option("--log-level", type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
              help="Set logging level (overrides config)")
@click.version_option(package_name="fluentcoach")
@click.pass_context
def main(ctx: click.Context, config_path: Optional[str], log_level: Optional[str]) -> None:
    """FluentCoach - spoken English practice with instant feedback."""
    try:
        ctx.obj = App(config_path, log_level)
    except (FileNotFoundError, ValueError) as e:
        raise click.ClickException(str(e))


@main.command()
@click.option("--api-key", help="Groq API key (starts with gsk_)")
@click.option("--level", type=click.Choice([level.value for level in Level]), help="Student level")
@click.option("--roleplay", help=f"Scenario: one of {', '.join(KNOWN_ROLEPLAYS)} or free text")
@click.option("--voice", help="Preferred voice identifier")
@click.option("--clear-key", is_flag=True, help="Remove the stored API key")
@click.pass_obj
def configure(app: App, api_key, level, roleplay, voice, clear_key) -> None:
    """Save the API key and practice preferences."""
    prefs = app.credentials.load()
    if api_key is None and not clear_key and not prefs.has_credential:
        api_key = click.prompt("Groq API key", hide_input=True)

    if clear_key:
        prefs = replace(prefs, api_key=None)
    elif api_key is not None:
        prefs = replace(prefs, api_key=api_key.strip())
    if level is not None:
        prefs = replace(prefs, level=Level.parse(level))
    if roleplay is not None:
        try:
            prefs = replace(prefs, roleplay=normalize_roleplay(roleplay))
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="--roleplay")
    if voice is not None:
        prefs = replace(prefs, preferred_voice_id=voice.strip() or None)

    try:
        app.credentials.save(prefs)
    except InvalidCredential as e:
        raise click.BadParameter(str(e), param_hint="--api-key")
    except PracticeError as e:
        raise click.ClickException(str(e))

    app.screen.show_preferences(prefs)
    if not prefs.has_credential:
        app.screen.show_onboarding()
    else:
        app.screen.show_info("✅ Settings saved")


@main.command()
@click.option("--resume", "resume_id", type=int, help="Continue from a saved history entry")
@click.pass_obj
def practice(app: App, resume_id: Optional[int]) -> None:
    """Record turns and get grammar and fluency feedback."""
    service = _service_or_onboarding(app)
    if service is None:
        sys.exit(1)
    if resume_id is not None:
        try:
            service.restore(resume_id)
        except KeyError:
            service.capture.release()
            raise click.ClickException(f"No history entry {resume_id}")
        app.screen.show_feedback(service.transcript, service.analysis)
    try:
        asyncio.run(_practice_loop(service, app.screen))
    except KeyboardInterrupt:
        app.screen.console.print("\n👋 Goodbye!", style="bold blue")


@main.command()
@click.option("--mute", is_flag=True, help="Do not read replies aloud")
@click.pass_obj
def converse(app: App, mute: bool) -> None:
    """Hold an in-character conversation with feedback on each turn."""
    service = _service_or_onboarding(app, speak_replies=not mute)
    if service is None:
        sys.exit(1)
    try:
        asyncio.run(_converse_loop(service, app.screen))
    except KeyboardInterrupt:
        app.screen.console.print("\n👋 Goodbye!", style="bold blue")


@main.command()
@click.argument("text")
@click.pass_obj
def analyze(app: App, text: str) -> None:
    """Analyze typed TEXT without recording."""
    service = _service_or_onboarding(app)
    if service is None:
        sys.exit(1)
    asyncio.run(_analyze_once(service, text))
    if service.last_error is not None:
        app.screen.show_error(service.last_error)
        sys.exit(1)
    if service.analysis is None:
        raise click.ClickException("Text too short to analyze")
    app.screen.show_feedback(service.transcript, service.analysis)


@main.command()
@click.pass_obj
def grammar(app: App) -> None:
    """Show the tense cheat sheet."""
    app.screen.show_grammar()


@main.command()
@click.option("--all", "show_all", is_flag=True, help="Include non-English voices")
@click.pass_obj
def voices(app: App, show_all: bool) -> None:
    """List installed speech voices and the one replies will use."""
    speaker = app.build_speaker()
    if speaker is None:
        raise click.ClickException("Speech output is disabled (speech.enabled: false)")
    try:
        installed = asyncio.run(_list_voices(speaker))
    except SpeechUnavailable as e:
        raise click.ClickException(str(e))

    selected = select_voice(installed, app.credentials.load().preferred_voice_id)
    shown = installed if show_all else [v for v in installed if v.is_english]
    app.screen.show_voices(shown, selected)


@main.group()
def history() -> None:
    """Browse and manage saved practice sessions."""


@history.command("list")
@click.pass_obj
def history_list(app: App) -> None:
    app.screen.show_history(app.history.list())


@history.command("show")
@click.argument("entry_id", type=int)
@click.pass_obj
def history_show(app: App, entry_id: int) -> None:
    """Show a saved session and its feedback."""
    entry = app.history.get(entry_id)
    if entry is None:
        raise click.ClickException(f"No history entry {entry_id}")
    app.screen.console.print(f"{entry.timestamp}  level={entry.level.value}  "
                             f"scenario={entry.roleplay}  mode={entry.mode}", style="dim")
    app.screen.show_feedback(entry.transcript, entry.analysis)


@history.command("remove")
@click.argument("entry_id", type=int)
@click.pass_obj
def history_remove(app: App, entry_id: int) -> None:
    if not app.history.remove(entry_id):
        raise click.ClickException(f"No history entry {entry_id}")
    app.screen.show_info(f"Removed {entry_id}")


@history.command("clear")
@click.confirmation_option(prompt="Delete all practice history?")
@click.pass_obj
def history_clear(app: App) -> None:
    app.history.clear()
    app.screen.show_info("History cleared")


@main.command()
@click.option("--host", help="Bind address (overrides config)")
@click.option("--port", type=int, help="Port (overrides config)")
@click.pass_obj
def serve(app: App, host: Optional[str], port: Optional[int]) -> None:
    """Run the local proxy that forwards analysis and transcription requests."""
    from .server import run_proxy

    if host:
        app.config.set('server.host', host)
    if port:
        app.config.set('server.port', port)
    run_proxy(app.config)


if __name__ == "__main__":
    main()
