"""Unit tests for the click command line."""

import logging
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import Mock, patch

import pytest
import yaml
from click.testing import CliRunner
from rich.console import Console

from fluentcoach.main import _converse_loop, main
from fluentcoach.models.conversation import ConversationMessage, Role
from fluentcoach.models.preferences import Level, Preferences
from fluentcoach.storage import CredentialStore, KeyValueStore, SessionHistoryStore
from fluentcoach.ui import PracticeScreen


@pytest.fixture
def config_file(temp_data_dir):
    path = Path(temp_data_dir) / "fluentcoach.yaml"
    path.write_text(yaml.safe_dump({
        'storage': {'data_directory': 'data'},
        'logging': {'console_output': False, 'file_path': 'data/logs/test.log'},
    }))
    return path


@pytest.fixture
def store(config_file):
    return KeyValueStore(str(config_file.parent / "data" / "store"))


@pytest.fixture
def cli(config_file):
    """Invoke the CLI against the temp config, restoring root logging afterwards."""
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    runner = CliRunner()

    def invoke(*args, **kwargs):
        return runner.invoke(main, ["--config", str(config_file), *args], **kwargs)

    yield invoke

    for handler in root.handlers:
        if handler not in saved_handlers:
            handler.close()
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)


@pytest.mark.unit
class TestConfigureCommand:

    def test_saves_preferences(self, cli, store, api_key):
        result = cli("configure", "--api-key", api_key, "--level", "advanced", "--roleplay", "Travel")

        assert result.exit_code == 0, result.output
        assert "Settings saved" in result.output
        assert api_key not in result.output

        prefs = CredentialStore(store).load()
        assert prefs.api_key == api_key
        assert prefs.level == Level.ADVANCED
        assert prefs.roleplay == "travel"

    def test_rejects_bad_key(self, cli, store):
        result = cli("configure", "--api-key", "sk-wrong")

        assert result.exit_code == 2
        assert "gsk_" in result.output
        assert CredentialStore(store).load().has_credential is False

    def test_prompts_for_key(self, cli, store, api_key):
        result = cli("configure", input=f"{api_key}\n")

        assert result.exit_code == 0, result.output
        assert CredentialStore(store).get_api_key() == api_key

    def test_clear_key_shows_onboarding(self, cli, store, api_key):
        CredentialStore(store).save_api_key(api_key)

        result = cli("configure", "--clear-key")

        assert result.exit_code == 0
        assert "No Groq API key configured" in result.output
        assert CredentialStore(store).has_credential() is False

    def test_missing_config_file(self, temp_data_dir):
        result = CliRunner().invoke(main, ["--config", str(Path(temp_data_dir) / "nope.yaml"), "history", "list"])
        assert result.exit_code == 1
        assert "not found" in result.output


@pytest.mark.unit
class TestOnboardingGate:

    @pytest.mark.parametrize("command", [["practice"], ["converse"], ["analyze", "Hello there"]])
    def test_requires_key(self, cli, command):
        result = cli(*command)

        assert result.exit_code == 1
        assert "No Groq API key configured" in result.output


@pytest.mark.unit
class TestHistoryCommands:

    @pytest.fixture
    def entries(self, store, sample_analysis):
        history = SessionHistoryStore(store)
        first = history.record("My first story", sample_analysis, Level.BEGINNER, "general")
        second = history.record("A trip to Rome", sample_analysis, Level.ADVANCED, "travel")
        return [second, first]

    def test_list(self, cli, entries):
        result = cli("history", "list")

        assert result.exit_code == 0
        assert str(entries[0].id) in result.output
        assert str(entries[1].id) in result.output

    def test_list_empty(self, cli):
        result = cli("history", "list")
        assert "No practice history yet" in result.output

    def test_show(self, cli, entries):
        result = cli("history", "show", str(entries[1].id))

        assert result.exit_code == 0, result.output
        assert "My first story" in result.output
        assert "72/100" in result.output
        assert "level=beginner" in result.output

    def test_show_unknown(self, cli, entries):
        result = cli("history", "show", "1")
        assert result.exit_code == 1
        assert "No history entry 1" in result.output

    def test_remove(self, cli, store, entries):
        result = cli("history", "remove", str(entries[0].id))

        assert result.exit_code == 0
        assert [e.id for e in SessionHistoryStore(store).list()] == [entries[1].id]

    def test_clear(self, cli, store, entries):
        result = cli("history", "clear", "--yes")

        assert result.exit_code == 0
        assert len(SessionHistoryStore(store)) == 0


@pytest.mark.unit
class TestGrammarCommand:

    def test_renders_every_tense(self, cli):
        result = cli("grammar", env={"COLUMNS": "200"})

        assert result.exit_code == 0, result.output
        assert "Cheat Sheet: Master Tenses" in result.output
        for name in ("Simple Present", "Present Continuous", "Present Perfect", "Simple Past", "Future Simple"):
            assert name in result.output
        assert "Subject + will + Verb" in result.output
        assert '"They are watching TV."' in result.output

    def test_needs_no_key(self, cli, store):
        assert CredentialStore(store).has_credential() is False
        assert cli("grammar").exit_code == 0


@pytest.mark.unit
class TestVoicesCommand:

    @pytest.fixture
    def engine(self):
        engine = Mock()
        properties = {
            'rate': 200,
            'voices': [
                SimpleNamespace(id="voice.es", name="Jorge", languages=["es_ES"]),
                SimpleNamespace(id="voice.gb", name="Daniel", languages=["en_GB"]),
                SimpleNamespace(id="voice.us", name="Alex", languages=["en_US"]),
            ],
        }
        engine.getProperty.side_effect = properties.get
        with patch('pyttsx3.init', return_value=engine):
            yield engine

    @staticmethod
    def marked(output):
        return [line for line in output.splitlines() if "*" in line and "voice." in line]

    def test_lists_english_voices_and_marks_selected(self, cli, engine):
        result = cli("voices", env={"COLUMNS": "200"})

        assert result.exit_code == 0, result.output
        assert "Alex" in result.output
        assert "Daniel" in result.output
        assert "Jorge" not in result.output
        marked = self.marked(result.output)
        assert len(marked) == 1 and "voice.us" in marked[0]
        engine.stop.assert_called_once()

    def test_preferred_voice_marked(self, cli, store, engine):
        CredentialStore(store).save(Preferences(preferred_voice_id="voice.gb"))

        result = cli("voices", env={"COLUMNS": "200"})

        marked = self.marked(result.output)
        assert len(marked) == 1 and "voice.gb" in marked[0]

    def test_all_includes_other_languages(self, cli, engine):
        result = cli("voices", "--all", env={"COLUMNS": "200"})
        assert "Jorge" in result.output

    def test_engine_missing(self, cli):
        with patch('pyttsx3.init', side_effect=OSError("libespeak.so.1: cannot open shared object file")):
            result = cli("voices")

        assert result.exit_code == 1
        assert "No speech engine available" in result.output

    def test_disabled_in_config(self, config_file, cli):
        config = yaml.safe_load(config_file.read_text())
        config['speech'] = {'enabled': False}
        config_file.write_text(yaml.safe_dump(config))

        result = cli("voices")

        assert result.exit_code == 1
        assert "Speech output is disabled" in result.output


@pytest.mark.unit
class TestPracticeResume:

    def test_unknown_entry(self, cli, store, api_key, mock_pyaudio):
        CredentialStore(store).save_api_key(api_key)

        result = cli("practice", "--resume", "1")

        assert result.exit_code == 1
        assert "No history entry 1" in result.output


class ScriptedConversation:
    """Stands in for PracticeService: every spoken turn yields the same exchange."""

    def __init__(self):
        self.preferences = Preferences(level=Level.BEGINNER, roleplay="general")
        self.messages = []
        self.last_error = None
        self.spoken = []
        self.closed = False

    async def start_recording(self):
        pass

    async def converse_turn(self, speak=True):
        assert speak is False
        self.messages.append(ConversationMessage(len(self.messages) + 1, Role.USER, "I goes to the park yesterday"))
        reply = ConversationMessage(len(self.messages) + 1, Role.AI, "Which park did you visit?")
        self.messages.append(reply)
        return reply

    async def speak(self, text):
        self.spoken.append(text)
        return True

    async def replay_last_reply(self):
        reply = self.messages[-1] if self.messages else None
        if reply is not None:
            self.spoken.append(reply.content)
        return reply

    async def close(self):
        self.closed = True


@pytest.mark.unit
class TestConverseLoop:

    async def test_spoken_turn_shown_before_reply(self):
        console = Console(record=True, width=100)
        console.input = Mock(side_effect=["r", "", "", "r", "q"])
        service = ScriptedConversation()

        await _converse_loop(service, PracticeScreen(console))

        output = console.export_text()
        assert "No reply to replay yet." in output
        assert "🧑 You" in output
        assert output.index("I goes to the park yesterday") < output.index("Which park did you visit?")
        assert service.spoken == ["Which park did you visit?"] * 2
        assert service.closed is True
