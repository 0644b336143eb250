"""
Tests for the key/value stores and theme preference.
"""

import json

import pytest

from report_assistant import JsonFileStore, MemoryStore, load_theme, save_theme


class TestJsonFileStore:
    """State survives a reload and is written as one JSON object."""

    def test_persists_across_instances(self, tmp_path):
        path = tmp_path / "nested" / "state.json"
        JsonFileStore(path).set("report_app_auth_token", "abc")

        assert JsonFileStore(path).get("report_app_auth_token") == "abc"
        assert json.loads(path.read_text(encoding="utf-8")) == {"report_app_auth_token": "abc"}

    def test_remove(self, tmp_path):
        path = tmp_path / "state.json"
        store = JsonFileStore(path)
        store.set("a", "1")
        store.set("b", "2")
        store.remove("a")
        store.remove("missing")

        assert JsonFileStore(path).keys() == ["b"]

    @pytest.mark.parametrize("content", ["{broken", "[1, 2]"])
    def test_unreadable_file_starts_empty(self, tmp_path, content):
        path = tmp_path / "state.json"
        path.write_text(content, encoding="utf-8")
        assert JsonFileStore(path).keys() == []

    def test_no_temp_files_left(self, tmp_path):
        store = JsonFileStore(tmp_path / "state.json")
        store.set("k", "v")
        assert [p.name for p in tmp_path.iterdir()] == ["state.json"]


class TestTheme:

    def test_default(self):
        assert load_theme(MemoryStore()) == "light"

    def test_save_and_load(self):
        store = MemoryStore()
        save_theme(store, "dark")
        assert load_theme(store) == "dark"

    def test_rejects_unknown(self):
        with pytest.raises(ValueError):
            save_theme(MemoryStore(), "sepia")

    def test_ignores_corrupt_value(self):
        assert load_theme(MemoryStore({"theme": "neon"})) == "light"
