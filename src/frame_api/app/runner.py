"""Wrapper around the `lilypad` CLI.

Terms used in this file:
- Module version: which Lilypad compute module to run (for example a cowsay job).
- Artifact: the text file the CLI downloads and reports with a `cat <path>` hint.
"""

from __future__ import annotations

import logging
import os
import re
import subprocess
from collections.abc import Callable
from pathlib import Path
from typing import Any

from .errors import (
    ConfigurationError,
    OutputParseError,
    ProcessExitError,
    ProcessStderrError,
    ProcessTimeoutError,
    SpawnError,
)
from .render import WIDE_ASPECT_RATIO, canvas_size, render_png

logger = logging.getLogger(__name__)

MODULE_VERSION = "cowsay:v0.0.4"
DEFAULT_DOWNLOADS_DIR = "/tmp/lilypad/data/downloaded-files"
DEFAULT_SECRET_ENV_VAR = "WEB3_PRIVATE_KEY"

PopenFactory = Callable[..., Any]


def stdout_path_pattern(downloads_dir: str = DEFAULT_DOWNLOADS_DIR) -> re.Pattern[str]:
    prefix = re.escape(downloads_dir.rstrip("/"))
    return re.compile(rf"cat ({prefix}/\w+/stdout)")


def extract_stdout_path(stdout: str, downloads_dir: str = DEFAULT_DOWNLOADS_DIR) -> str:
    """Find the artifact path the CLI prints after a successful job."""
    match = stdout_path_pattern(downloads_dir).search(stdout)
    if match is None:
        raise OutputParseError("Stdout file path not found in CLI output")
    return match.group(1)


class LilypadRunner:
    """Turn a prompt into a PNG by running one Lilypad job."""

    def __init__(
        self,
        *,
        binary: str = "lilypad",
        module_version: str = MODULE_VERSION,
        secret_env_var: str = DEFAULT_SECRET_ENV_VAR,
        downloads_dir: str = DEFAULT_DOWNLOADS_DIR,
        timeout_s: float | None = None,
        strict_stderr: bool = True,
        aspect_ratio: float = WIDE_ASPECT_RATIO,
        popen: PopenFactory | None = None,
    ) -> None:
        # Reject unsupported ratios up front instead of after a full job.
        canvas_size(1, aspect_ratio)
        self.binary = binary
        self.module_version = module_version
        self.secret_env_var = secret_env_var
        self.downloads_dir = downloads_dir
        self.timeout_s = timeout_s
        self.strict_stderr = strict_stderr
        self.aspect_ratio = aspect_ratio
        self._popen = popen or subprocess.Popen

    def build_command(self, prompt: str) -> list[str]:
        # Prompt is one argv element; no shell ever sees it.
        return [self.binary, "run", self.module_version, "-i", f"Message={prompt}"]

    def run(self, prompt: str) -> bytes:
        secret = os.environ.get(self.secret_env_var, "").strip()
        if not secret:
            raise ConfigurationError(f"{self.secret_env_var} is not set in the environment variables.")

        command = self.build_command(prompt)
        logger.info(
            "lilypad_run event=start binary=%s module=%s prompt_chars=%s",
            self.binary,
            self.module_version,
            len(prompt),
        )
        env = {**os.environ, self.secret_env_var: secret}
        stdout, stderr, exit_code = self._execute(command, env)

        if exit_code != 0:
            if stderr:
                logger.warning("lilypad_run event=stderr exit_code=%s stderr=%r", exit_code, stderr[-500:])
            raise ProcessExitError(exit_code)
        if stderr:
            if self.strict_stderr:
                raise ProcessStderrError(stderr)
            logger.warning("lilypad_run event=stderr_ignored stderr=%r", stderr[-500:])

        logger.info("lilypad_run event=completed stdout_chars=%s", len(stdout))
        return self._render_artifact(stdout)

    def _execute(self, command: list[str], env: dict[str, str]) -> tuple[str, str, int]:
        try:
            process = self._popen(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env=env,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as exc:
            raise SpawnError(f"Error with spawning process: {exc}") from exc

        try:
            stdout, stderr = process.communicate(timeout=self.timeout_s)
        except subprocess.TimeoutExpired as exc:
            process.kill()
            process.communicate()
            raise ProcessTimeoutError(self.timeout_s or 0.0) from exc
        return stdout or "", stderr or "", process.returncode

    def _render_artifact(self, stdout: str) -> bytes:
        artifact_path = extract_stdout_path(stdout, self.downloads_dir)
        try:
            text = Path(artifact_path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise OutputParseError(f"Error processing output: {exc}") from exc
        try:
            return render_png(text, self.aspect_ratio)
        except (OSError, ValueError) as exc:
            raise OutputParseError(f"Error processing output: {exc}") from exc
