"""
Tests for the vendor settings merge — non-destructive, idempotent, 0600.
"""

import json
import stat
from pathlib import Path

import pytest

from devbox.core.services.settings import (
    SettingsError,
    merge_env_settings,
    read_settings,
    write_env_settings,
)


class TestMergeEnvSettings:
    def test_env_created(self):
        assert merge_env_settings({"other": 1}, {"A": "1"}) == {"other": 1, "env": {"A": "1"}}

    def test_overwrites_and_preserves(self):
        result = merge_env_settings({"env": {"A": "0", "B": "2"}}, {"A": "1"})
        assert result == {"env": {"A": "1", "B": "2"}}

    def test_key_order_stable(self):
        result = merge_env_settings({"z": 1, "env": {"B": "2", "A": "0"}, "a": 2}, {"A": "1", "C": "3"})
        assert list(result) == ["z", "env", "a"]
        assert list(result["env"]) == ["B", "A", "C"]

    def test_input_not_mutated(self):
        data = {"env": {"A": "0"}}
        merge_env_settings(data, {"A": "1"})
        assert data == {"env": {"A": "0"}}

    def test_non_object_env_rejected(self):
        with pytest.raises(SettingsError):
            merge_env_settings({"env": ["A"]}, {"A": "1"})


class TestReadSettings:
    def test_missing_is_empty(self, tmp_path: Path):
        assert read_settings(tmp_path / "settings.json") == {}

    def test_blank_is_empty(self, tmp_path: Path):
        path = tmp_path / "settings.json"
        path.write_text("  \n")
        assert read_settings(path) == {}

    def test_invalid_json(self, tmp_path: Path):
        path = tmp_path / "settings.json"
        path.write_text("{not json")
        with pytest.raises(SettingsError, match="Invalid JSON"):
            read_settings(path)

    def test_non_object(self, tmp_path: Path):
        path = tmp_path / "settings.json"
        path.write_text("[1, 2]")
        with pytest.raises(SettingsError, match="JSON object"):
            read_settings(path)


class TestWriteEnvSettings:
    def test_creates_file_and_directory(self, tmp_path: Path):
        path = tmp_path / ".claude" / "settings.json"
        write_env_settings(path, {"A": "1"})
        assert json.loads(path.read_text()) == {"env": {"A": "1"}}

    def test_preserves_unrelated_keys(self, tmp_path: Path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"permissions": {"allow": ["Bash"]}, "env": {"KEEP": "me", "A": "0"}}))
        write_env_settings(path, {"A": "1"})
        data = json.loads(path.read_text())
        assert data["permissions"] == {"allow": ["Bash"]}
        assert data["env"] == {"KEEP": "me", "A": "1"}

    def test_idempotent_bytes(self, tmp_path: Path):
        path = tmp_path / "settings.json"
        path.write_text('{"other": 1}')
        payload = {"AWS_REGION": "us-east-1", "CLAUDE_CODE_USE_BEDROCK": "1"}
        write_env_settings(path, payload)
        first = path.read_bytes()
        write_env_settings(path, payload)
        assert path.read_bytes() == first

    def test_owner_only_permissions(self, tmp_path: Path):
        path = tmp_path / "settings.json"
        path.write_text("{}")
        path.chmod(0o644)
        write_env_settings(path, {"A": "1"})
        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_no_temp_files_left(self, tmp_path: Path):
        path = tmp_path / "settings.json"
        write_env_settings(path, {"A": "1"})
        assert [p.name for p in tmp_path.iterdir()] == ["settings.json"]

    def test_invalid_file_untouched(self, tmp_path: Path):
        path = tmp_path / "settings.json"
        path.write_text("{broken")
        with pytest.raises(SettingsError):
            write_env_settings(path, {"A": "1"})
        assert path.read_text() == "{broken"
