from __future__ import annotations

import shutil
import tempfile
from pathlib import Path
from typing import Any, Callable

import pytest
from PIL import Image


# ═══════════════════════════════════════════════════════════════════════════════
# SHARED FIXTURES
# ═══════════════════════════════════════════════════════════════════════════════

@pytest.fixture
def workspace_dir() -> Path:
    """Create temporary workspace."""
    tmp = tempfile.mkdtemp()
    yield Path(tmp)
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def make_page(workspace_dir: Path) -> Callable[..., Path]:
    """Write a solid-colour page PNG into the workspace and return its path."""

    def _make(name: str = "page_01.png", size: tuple[int, int] = (1600, 2000), color: Any = "white") -> Path:
        path = workspace_dir / name
        Image.new("RGB", size, color=color).save(path)
        return path

    return _make


class FakeResponse:
    def __init__(self, text: str | None):
        self.text = text


class FakeModels:
    """Stands in for client.models; replays scripted results in order.

    A scripted item is either the response text or an exception to raise.
    """

    def __init__(self, script: list[Any]):
        self.script = list(script)
        self.calls: list[dict[str, Any]] = []

    def generate_content(self, *, model: str, contents: Any, config: Any = None) -> FakeResponse:
        self.calls.append({"model": model, "contents": contents})
        item = self.script.pop(0) if self.script else "unknown"
        if isinstance(item, BaseException):
            raise item
        return FakeResponse(item)


class FakeClient:
    def __init__(self, script: list[Any]):
        self.models = FakeModels(script)


@pytest.fixture
def fake_client_factory() -> Callable[[list[Any]], FakeClient]:
    return FakeClient


class FakeClock:
    """Monotonic clock that only moves when sleep() is called."""

    def __init__(self, start: float = 100.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()
