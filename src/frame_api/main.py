"""FastAPI application wiring for the Lilypad frame service.

Terms used in this file:
- Frame: an HTML document whose meta tags describe a preview image and one button.
- Action: which step of the input -> submit -> check flow a button press targets.
- app.state: shared runtime objects (settings, tracker, generator).
"""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import FileResponse, HTMLResponse
from fastapi.staticfiles import StaticFiles
from pydantic import ValidationError

from .app import frames
from .app.generation import FrameGenerator, ImageRunner
from .app.models import FramePayload
from .app.runner import LilypadRunner
from .app.settings import Settings, get_settings
from .app.tracker import RequestTracker

logger = logging.getLogger(__name__)


def build_runner(settings: Settings) -> LilypadRunner:
    return LilypadRunner(
        binary=settings.lilypad_binary,
        module_version=settings.module_version,
        secret_env_var=settings.secret_env_var,
        downloads_dir=settings.downloads_dir,
        timeout_s=settings.command_timeout_s,
        strict_stderr=settings.strict_stderr,
        aspect_ratio=settings.aspect_ratio,
    )


def create_app(
    *,
    settings_override: Settings | None = None,
    tracker: RequestTracker | None = None,
    runner: ImageRunner | None = None,
) -> FastAPI:
    """Application factory.

    Tests pass their own tracker/runner so no external process is spawned.
    """
    settings = settings_override or get_settings()
    logging.getLogger("frame_api").setLevel(settings.log_level.upper())

    request_tracker = tracker or RequestTracker(max_entries=settings.tracker_max_entries)
    generator = FrameGenerator(
        runner=runner or build_runner(settings),
        tracker=request_tracker,
        output_dir=settings.output_dir,
        max_workers=settings.max_workers,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        app.state.generator.shutdown(wait=False)

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.settings = settings
    app.state.tracker = request_tracker
    app.state.generator = generator
    base_url = settings.resolved_base_url()

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/api/frame", response_class=HTMLResponse)
    async def frame(
        request: Request,
        action: str = "input",
        request_id: str | None = Query(default=None, alias="id"),
    ) -> str:
        prompt = await _read_prompt(request)

        if action == "input":
            return frames.input_frame(base_url)

        if action == "submit":
            if prompt is None:
                logger.info("frame_submit event=rejected reason=missing_prompt")
                return frames.fallback_frame(base_url)
            new_id = app.state.tracker.create(prompt)
            app.state.generator.start(new_id, prompt)
            logger.info("frame_submit event=accepted request_id=%s", new_id)
            return frames.submitted_frame(base_url, new_id)

        if action == "check" and request_id:
            record = app.state.tracker.get(request_id)
            if record is not None:
                if record.status == "completed":
                    return frames.completed_frame(base_url, request_id)
                if record.status == "error":
                    return frames.failed_frame(base_url)
                return frames.processing_frame(base_url, request_id)
            logger.info("frame_check event=unknown_id request_id=%s", request_id)

        return frames.fallback_frame(base_url)

    @app.get("/results/{request_id}.png")
    def result_image(request_id: str) -> FileResponse:
        record = app.state.tracker.get(request_id)
        if record is None or record.status != "completed":
            raise HTTPException(status_code=404, detail="Result not found")
        path = app.state.generator.output_path(request_id)
        if not path.is_file():
            raise HTTPException(status_code=404, detail="Result not found")
        return FileResponse(path, media_type="image/png")

    # Static frame assets (enter-prompt.png, loading.gif, error.png).
    if settings.public_dir.is_dir():
        app.mount("/", StaticFiles(directory=settings.public_dir), name="public")

    return app


async def _read_prompt(request: Request) -> str | None:
    """Extract untrustedData.inputText; any malformed body means no prompt."""
    body = await request.body()
    if not body:
        return None
    try:
        payload = FramePayload.model_validate(json.loads(body))
    except (ValueError, ValidationError):
        return None
    return payload.prompt


# Module-level app for `uvicorn frame_api.main:app`.
app = create_app()
