"""Unit tests for projecthub.cli — run in local mode (no backend configured)."""

import json

import pytest

from projecthub import cli
from projecthub.engine.cache import FileListStore

from conftest import DictCache


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    for var in ("PROJECTHUB_BACKEND_URL", "PROJECTHUB_BACKEND_KEY", "PROJECTHUB_REDIS_URL", "PROJECTHUB_ENV"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setattr(
        "projecthub.data.context.create_file_list_store",
        lambda *args, **kwargs: FileListStore(DictCache()),
    )
    path = tmp_path / "projecthub.yaml"
    path.write_text(
        "name: Test Hub\n"
        "backend:\n"
        "  anon_key: abcdefgh\n"
        "logging:\n"
        "  structured: false\n"
        f"  directory: {tmp_path / 'logs'}\n"
    )
    return str(path)


class TestConfigCommand:

    def test_prints_masked_config(self, config_file, capsys):
        assert cli.main(["--config", config_file, "config"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["name"] == "Test Hub"
        assert data["backend"]["anon_key"] == "abcd…"

    def test_invalid_config(self, tmp_path, capsys):
        path = tmp_path / "projecthub.yaml"
        path.write_text("environment: moon\n")
        assert cli.main(["--config", str(path), "config"]) == 1
        assert capsys.readouterr().out.startswith("[ERROR] Invalid configuration")


class TestSampleCommand:

    def test_dumps_dataset(self, capsys):
        assert cli.main(["sample"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert [p["id"] for p in data["projects"]] == ["1", "2"]


class TestProjectsCommand:

    def test_client_sees_own_projects(self, config_file, capsys):
        assert cli.main(["--config", config_file, "projects", "--user-id", "3", "--role", "client"]) == 0
        out = capsys.readouterr().out
        assert "Website for Xee Design" in out
        assert "E-commerce Mobile App" not in out
        assert "1 project(s) visible to client 3" in out

    def test_manager_sees_all(self, config_file, capsys):
        assert cli.main(["--config", config_file, "projects", "--user-id", "1"]) == 0
        assert "2 project(s) visible to manager 1" in capsys.readouterr().out


class TestLockCommands:

    def test_unknown_page(self, config_file, capsys):
        assert cli.main(["--config", config_file, "lock", "nope", "--user-id", "1"]) == 1
        assert "[ERROR] Brochure page not found: nope" in capsys.readouterr().out

    def test_unlock_unknown_page(self, config_file, capsys):
        assert cli.main(["--config", config_file, "unlock", "nope", "--user-id", "1"]) == 1


def test_no_command_prints_help(capsys):
    assert cli.main([]) == 0
    assert "usage" in capsys.readouterr().out
