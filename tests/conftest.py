from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from contextkeeper.config import CONFIG_ENV_OVERRIDES


@pytest.fixture(autouse=True)
def _isolate_contextkeeper_home(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for env_var in CONFIG_ENV_OVERRIDES.values():
        monkeypatch.delenv(env_var, raising=False)
    monkeypatch.setenv("CONTEXTKEEPER_HOME", str(tmp_path / "home"))
    monkeypatch.setenv("CONTEXTKEEPER_CONFIG", str(tmp_path / "config.json"))


@pytest.fixture
def write_transcript(tmp_path: Path) -> Callable[..., Path]:
    def _write(records: list[dict[str, Any] | str], name: str = "transcript.jsonl") -> Path:
        path = tmp_path / name
        lines = [r if isinstance(r, str) else json.dumps(r) for r in records]
        path.write_text("\n".join(lines) + "\n")
        return path

    return _write
