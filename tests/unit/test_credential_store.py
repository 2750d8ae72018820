"""Unit tests for CredentialStore and KeyValueStore."""

import os
from pathlib import Path

import pytest

from fluentcoach.errors import InvalidCredential, PersistenceFailure
from fluentcoach.models.preferences import Level, Preferences
from fluentcoach.storage import CredentialStore, KeyValueStore
from fluentcoach.storage.credential_store import API_KEY_KEY, LEVEL_KEY, ROLEPLAY_KEY


@pytest.mark.unit
class TestKeyValueStore:

    def test_missing_key_returns_default(self, kv_store):
        assert kv_store.get("nothing") is None
        assert kv_store.get("nothing", []) == []

    def test_set_and_get(self, kv_store):
        kv_store.set("answer", {"value": 42})
        assert kv_store.get("answer") == {"value": 42}
        assert kv_store.keys() == ["answer"]

    def test_survives_new_instance(self, kv_store):
        kv_store.set("level", "advanced")
        reopened = KeyValueStore(str(kv_store.data_dir))
        assert reopened.get("level") == "advanced"

    def test_no_temp_files_left(self, kv_store):
        kv_store.set("a", 1)
        kv_store.set("a", 2)
        assert os.listdir(kv_store.data_dir) == ["a.json"]

    def test_corrupt_file_raises_persistence_failure(self, kv_store):
        Path(kv_store.data_dir, "broken.json").write_text("{not json", encoding="utf-8")
        with pytest.raises(PersistenceFailure):
            kv_store.get("broken")

    def test_undecodable_file_raises_persistence_failure(self, kv_store):
        Path(kv_store.data_dir, "binary.json").write_bytes(b"\xff\xfe[garbage")
        with pytest.raises(PersistenceFailure):
            kv_store.get("binary")

    def test_unserializable_value_raises(self, kv_store):
        with pytest.raises(PersistenceFailure):
            kv_store.set("bad", {"obj": object()})
        assert kv_store.get("bad") is None

    def test_invalid_key_rejected(self, kv_store):
        with pytest.raises(ValueError):
            kv_store.set("../escape", 1)

    def test_delete(self, kv_store):
        kv_store.set("gone", "soon")
        kv_store.delete("gone")
        kv_store.delete("gone")
        assert kv_store.get("gone") is None

    def test_get_str_ignores_non_strings(self, kv_store):
        kv_store.set("number", 5)
        assert kv_store.get_str("number") is None


@pytest.mark.unit
class TestCredentialStore:

    def test_defaults_when_empty(self, kv_store):
        prefs = CredentialStore(kv_store).load()

        assert prefs.api_key is None
        assert prefs.has_credential is False
        assert prefs.level == Level.INTERMEDIATE
        assert prefs.roleplay == "general"
        assert prefs.preferred_voice_id is None

    def test_save_and_load_round_trip(self, kv_store, api_key):
        store = CredentialStore(kv_store)
        store.save(Preferences(api_key=f"  {api_key} ", level=Level.ADVANCED,
                               roleplay="Interview", preferred_voice_id="en-GB-1"))

        prefs = CredentialStore(KeyValueStore(str(kv_store.data_dir))).load()

        assert prefs.api_key == api_key
        assert prefs.level == Level.ADVANCED
        assert prefs.roleplay == "interview"
        assert prefs.preferred_voice_id == "en-GB-1"
        assert kv_store.get(API_KEY_KEY) == api_key
        assert kv_store.get(LEVEL_KEY) == "advanced"

    @pytest.mark.parametrize("bad_key", ["sk-abc123", "", "   ", "gsk_", "GSK_abc"])
    def test_invalid_prefix_rejected(self, kv_store, bad_key):
        store = CredentialStore(kv_store)
        with pytest.raises(InvalidCredential):
            store.save_api_key(bad_key)
        assert kv_store.get(API_KEY_KEY) is None

    def test_invalid_key_leaves_previous_key(self, kv_store, api_key):
        store = CredentialStore(kv_store)
        store.save_api_key(api_key)

        with pytest.raises(InvalidCredential):
            store.save(Preferences(api_key="nope", level=Level.BEGINNER))

        assert store.get_api_key() == api_key
        assert store.load().level == Level.INTERMEDIATE

    def test_custom_prefix(self, kv_store):
        store = CredentialStore(kv_store, key_prefix="test_")
        assert store.save_api_key("test_123") == "test_123"

    def test_clear_api_key(self, kv_store, api_key):
        store = CredentialStore(kv_store)
        store.save_api_key(api_key)
        store.clear_api_key()
        assert store.has_credential() is False

    def test_unknown_level_falls_back_to_default(self, kv_store):
        kv_store.set(LEVEL_KEY, "expert")
        kv_store.set(ROLEPLAY_KEY, "restaurant")

        prefs = CredentialStore(kv_store).load()

        assert prefs.level == Level.INTERMEDIATE
        assert prefs.roleplay == "restaurant"

    def test_corrupt_key_file_loads_without_credential(self, kv_store):
        Path(kv_store.data_dir, f"{API_KEY_KEY}.json").write_text("garbage", encoding="utf-8")
        assert CredentialStore(kv_store).load().has_credential is False

    def test_undecodable_key_file_loads_without_credential(self, kv_store):
        Path(kv_store.data_dir, f"{API_KEY_KEY}.json").write_bytes(b"\xff\xfe[garbage")
        assert CredentialStore(kv_store).load().has_credential is False

    def test_masked_key_hides_secret(self, api_key):
        masked = Preferences(api_key=api_key).masked_key()
        assert api_key not in masked
        assert masked.startswith("gsk_")
