from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from coursehub.bootstrap import Bootstrapper
from coursehub.config import AppConfig

ADMIN_TOKEN = "test-admin-token"


@pytest.fixture()
def temp_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> AppConfig:
    monkeypatch.delenv("COURSEHUB_ADMIN_TOKEN", raising=False)
    monkeypatch.delenv("COURSEHUB_MAX_UPLOAD_BYTES", raising=False)
    monkeypatch.chdir(tmp_path)

    config = AppConfig.from_mapping(
        {
            "storage_root": "storage",
            "database_file": "storage/coursehub.db",
            "uploads_root": "storage/uploads",
            "admin_token": ADMIN_TOKEN,
        },
        base_path=tmp_path,
    )

    Bootstrapper(config).initialize()
    return config
