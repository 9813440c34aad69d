from __future__ import annotations

import io
from collections.abc import Callable
from pathlib import Path

import pytest
from PIL import Image

from frame_api.app import runner as runner_module
from frame_api.app.errors import (
    ConfigurationError,
    OutputParseError,
    ProcessExitError,
    ProcessStderrError,
    ProcessTimeoutError,
    SpawnError,
    UnsupportedAspectRatioError,
)
from frame_api.app.runner import LilypadRunner, extract_stdout_path

SECRET = "0xabc123"


@pytest.fixture(autouse=True)
def secret_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WEB3_PRIVATE_KEY", SECRET)


def _cli_stdout(path: Path | str) -> str:
    return (
        "Lilypad job submitted\n"
        "Results saved.\n"
        f"    cat {path}\n"
        "Done.\n"
    )


def test_extract_stdout_path_uses_default_download_dir() -> None:
    stdout = "open results:\n  cat /tmp/lilypad/data/downloaded-files/abc/stdout\n"
    assert extract_stdout_path(stdout) == "/tmp/lilypad/data/downloaded-files/abc/stdout"


def test_extract_stdout_path_missing_pattern() -> None:
    with pytest.raises(OutputParseError):
        extract_stdout_path("job finished without a result hint")
    with pytest.raises(OutputParseError):
        extract_stdout_path("cat /var/tmp/other/abc/stdout")


def test_missing_secret_fails_before_spawn(
    monkeypatch: pytest.MonkeyPatch, make_popen: Callable[..., object]
) -> None:
    monkeypatch.delenv("WEB3_PRIVATE_KEY", raising=False)
    popen = make_popen()
    runner = LilypadRunner(popen=popen)

    with pytest.raises(ConfigurationError, match="WEB3_PRIVATE_KEY"):
        runner.run("hello")
    assert popen.calls == []


def test_blank_secret_counts_as_missing(
    monkeypatch: pytest.MonkeyPatch, make_popen: Callable[..., object]
) -> None:
    monkeypatch.setenv("WEB3_PRIVATE_KEY", "   ")
    popen = make_popen()
    with pytest.raises(ConfigurationError):
        LilypadRunner(popen=popen).run("hello")
    assert popen.calls == []


def test_default_spawn_is_never_reached_without_secret(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("WEB3_PRIVATE_KEY", raising=False)
    spawned: list[object] = []
    monkeypatch.setattr(runner_module.subprocess, "Popen", lambda *a, **k: spawned.append(a))

    with pytest.raises(ConfigurationError):
        LilypadRunner().run("hello")
    assert spawned == []


def test_successful_run_renders_artifact(
    downloads_dir: Path,
    make_popen: Callable[..., object],
    write_artifact: Callable[[str, str], Path],
) -> None:
    artifact = write_artifact("abc", "hello\nworld")
    popen = make_popen(stdout=_cli_stdout(artifact))
    runner = LilypadRunner(downloads_dir=str(downloads_dir), popen=popen)

    png = runner.run("hello")

    with Image.open(io.BytesIO(png)) as image:
        assert image.size == (800, 80)
    assert len(popen.calls) == 1


def test_prompt_is_passed_as_single_argument(
    downloads_dir: Path,
    make_popen: Callable[..., object],
    write_artifact: Callable[[str, str], Path],
) -> None:
    artifact = write_artifact("job1", "moo")
    popen = make_popen(stdout=_cli_stdout(artifact))
    runner = LilypadRunner(downloads_dir=str(downloads_dir), popen=popen)
    prompt = 'hi" && rm -rf / ; echo "$(whoami)'

    runner.run(prompt)

    args, kwargs = popen.calls[0]
    assert args == ["lilypad", "run", "cowsay:v0.0.4", "-i", f"Message={prompt}"]
    assert "shell" not in kwargs
    assert kwargs["env"]["WEB3_PRIVATE_KEY"] == SECRET


def test_custom_binary_and_module(make_popen: Callable[..., object]) -> None:
    runner = LilypadRunner(binary="/opt/lilypad", module_version="cowsay:v1.0.0", popen=make_popen())
    assert runner.build_command("moo") == [
        "/opt/lilypad",
        "run",
        "cowsay:v1.0.0",
        "-i",
        "Message=moo",
    ]


def test_spawn_failure(make_popen: Callable[..., object]) -> None:
    popen = make_popen(error=FileNotFoundError("lilypad"))
    with pytest.raises(SpawnError):
        LilypadRunner(popen=popen).run("hello")


def test_non_zero_exit_reports_code_only(make_popen: Callable[..., object]) -> None:
    popen = make_popen(returncode=2, stderr="wallet has no funds")
    with pytest.raises(ProcessExitError) as excinfo:
        LilypadRunner(popen=popen).run("hello")
    assert excinfo.value.exit_code == 2
    assert "wallet" not in str(excinfo.value)


def test_stderr_on_success_is_failure_in_strict_mode(
    downloads_dir: Path,
    make_popen: Callable[..., object],
    write_artifact: Callable[[str, str], Path],
) -> None:
    artifact = write_artifact("abc", "moo")
    popen = make_popen(stdout=_cli_stdout(artifact), stderr="warning: slow network")
    runner = LilypadRunner(downloads_dir=str(downloads_dir), popen=popen)

    with pytest.raises(ProcessStderrError, match="slow network"):
        runner.run("hello")


def test_stderr_is_tolerated_when_not_strict(
    downloads_dir: Path,
    make_popen: Callable[..., object],
    write_artifact: Callable[[str, str], Path],
) -> None:
    artifact = write_artifact("abc", "moo")
    popen = make_popen(stdout=_cli_stdout(artifact), stderr="warning: slow network")
    runner = LilypadRunner(downloads_dir=str(downloads_dir), strict_stderr=False, popen=popen)

    assert runner.run("hello").startswith(b"\x89PNG")


def test_stdout_without_path_is_parse_error(make_popen: Callable[..., object]) -> None:
    popen = make_popen(stdout="Job completed, nothing to show\n")
    with pytest.raises(OutputParseError):
        LilypadRunner(popen=popen).run("hello")


def test_unreadable_artifact_is_parse_error(
    downloads_dir: Path, make_popen: Callable[..., object]
) -> None:
    popen = make_popen(stdout=_cli_stdout(downloads_dir / "gone" / "stdout"))
    runner = LilypadRunner(downloads_dir=str(downloads_dir), popen=popen)
    with pytest.raises(OutputParseError):
        runner.run("hello")


def test_timeout_kills_process(make_popen: Callable[..., object]) -> None:
    popen = make_popen(hang=True)
    runner = LilypadRunner(timeout_s=0.5, popen=popen)

    with pytest.raises(ProcessTimeoutError):
        runner.run("hello")
    assert popen.process.killed is True


def test_unsupported_aspect_ratio_rejected_at_construction() -> None:
    with pytest.raises(UnsupportedAspectRatioError):
        LilypadRunner(aspect_ratio=1.5)
