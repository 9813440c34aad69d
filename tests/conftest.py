from __future__ import annotations

import subprocess
import threading
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient

from frame_api.app.settings import Settings
from frame_api.app.tracker import RequestTracker
from frame_api.main import create_app


class FakeRunner:
    """Runner double: returns fixed bytes, optionally blocking on a gate."""

    def __init__(
        self,
        *,
        image: bytes = b"\x89PNG fake",
        error: Exception | None = None,
        gate: threading.Event | None = None,
    ) -> None:
        self.image = image
        self.error = error
        self.gate = gate
        self.prompts: list[str] = []

    def run(self, prompt: str) -> bytes:
        self.prompts.append(prompt)
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.error is not None:
            raise self.error
        return self.image


class FakeProcess:
    def __init__(
        self,
        *,
        stdout: str = "",
        stderr: str = "",
        returncode: int = 0,
        hang: bool = False,
    ) -> None:
        self.stdout = stdout
        self.stderr = stderr
        self.returncode = returncode
        self.hang = hang
        self.killed = False

    def communicate(self, timeout: float | None = None) -> tuple[str, str]:
        if self.hang and not self.killed:
            raise subprocess.TimeoutExpired(cmd="lilypad", timeout=timeout or 0)
        return self.stdout, self.stderr

    def kill(self) -> None:
        self.killed = True


class FakePopen:
    """Spy standing in for subprocess.Popen."""

    def __init__(self, process: FakeProcess | None = None, error: OSError | None = None) -> None:
        self.process = process or FakeProcess()
        self.error = error
        self.calls: list[tuple[list[str], dict[str, Any]]] = []

    def __call__(self, args: list[str], **kwargs: Any) -> FakeProcess:
        self.calls.append((args, kwargs))
        if self.error is not None:
            raise self.error
        return self.process


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        base_url="https://frames.example.test/",
        public_dir=tmp_path / "public",
        output_dir=tmp_path / "results",
        max_workers=2,
    )


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def client(settings: Settings, fake_runner: FakeRunner) -> Iterator[TestClient]:
    app = create_app(settings_override=settings, tracker=RequestTracker(), runner=fake_runner)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def downloads_dir(tmp_path: Path) -> Path:
    path = tmp_path / "downloaded-files"
    path.mkdir()
    return path


@pytest.fixture
def make_popen() -> Callable[..., FakePopen]:
    def _make(*, error: OSError | None = None, **process_kwargs: Any) -> FakePopen:
        return FakePopen(FakeProcess(**process_kwargs), error=error)

    return _make


@pytest.fixture
def write_artifact(downloads_dir: Path) -> Callable[[str, str], Path]:
    def _write(job_id: str, text: str) -> Path:
        job_dir = downloads_dir / job_id
        job_dir.mkdir(parents=True, exist_ok=True)
        artifact = job_dir / "stdout"
        artifact.write_text(text, encoding="utf-8")
        return artifact

    return _write
