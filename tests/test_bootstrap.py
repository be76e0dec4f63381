import sqlite3
from pathlib import Path

import pytest

import coursehub.config as config_module
from coursehub.bootstrap import BootstrapError, Bootstrapper
from coursehub.config import AppConfig


def _config(tmp_path: Path) -> AppConfig:
    storage_root = tmp_path / "storage"
    return AppConfig(
        storage_root=storage_root,
        database_file=storage_root / "coursehub.db",
        uploads_root=storage_root / "uploads",
    )


def test_bootstrapper_raises_when_storage_directory_unwritable(
    tmp_path: Path, monkeypatch
) -> None:
    config = _config(tmp_path)
    original_ensure = config_module._ensure_writable_directory

    def fake_ensure(path: Path) -> bool:
        if path.resolve() == config.storage_root.resolve():
            return False
        return original_ensure(path)

    monkeypatch.setattr(config_module, "_ensure_writable_directory", fake_ensure)

    with pytest.raises(BootstrapError) as excinfo:
        Bootstrapper(config).initialize()

    assert "storage" in str(excinfo.value).lower()


def test_bootstrap_creates_schema(tmp_path: Path) -> None:
    config = _config(tmp_path)

    Bootstrapper(config).initialize()

    assert config.uploads_root.is_dir()
    with sqlite3.connect(config.database_file) as connection:
        tables = {row[0] for row in connection.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}
        indexes = {row[0] for row in connection.execute("SELECT name FROM sqlite_master WHERE type = 'index'")}
    assert {"courses", "videos"} <= tables
    assert "idx_videos_course_position" in indexes


def test_bootstrap_is_idempotent_and_keeps_data(tmp_path: Path) -> None:
    config = _config(tmp_path)
    Bootstrapper(config).initialize()
    with sqlite3.connect(config.database_file) as connection:
        connection.execute(
            "INSERT INTO courses(title, created_at, updated_at) VALUES ('Kept', 'x', 'x')"
        )

    Bootstrapper(config).initialize()

    with sqlite3.connect(config.database_file) as connection:
        titles = [row[0] for row in connection.execute("SELECT title FROM courses")]
    assert titles == ["Kept"]
