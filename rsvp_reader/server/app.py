"""FastAPI application exposing one reader session over HTTP.

WHY: A browser page or any other client can drive the reader remotely:
submit text, choose a voice, prepare audio in the background, then
play/pause/seek while polling the cursor for the word to display.

HOW: create_app() builds a FastAPI app holding one ReaderSession, one
JobStore and a short notice log on ``app.state``. POST /session/preprocess
validates credentials synchronously, then runs the prefetch as a
BackgroundTasks coroutine on the event loop and records progress in the
job store. Playback endpoints are ``async def`` so the synchronization
task is scheduled on the server's event loop.

RULES:
- 400 invalid input, 404 missing job/export, 409 operation invalid in the
  current state, 422 configuration error (e.g. missing API key)
- Only one preprocess job may be active at a time
- Playback endpoints only call public PlaybackEngine operations
- A periodic task expires finished jobs
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from contextlib import asynccontextmanager
from typing import Callable, List

from fastapi import BackgroundTasks, FastAPI, HTTPException
from fastapi.responses import Response

from rsvp_reader import __version__
from rsvp_reader.config import ConfigurationError
from rsvp_reader.core.prefetch import BatchFailedError
from rsvp_reader.exporters import EXPORTERS
from rsvp_reader.presentation import (
    format_eta,
    handle_key,
    highlighted_words,
    reading_progress,
    split_focal,
)
from rsvp_reader.server.jobs import Job, JobStatus, JobStore
from rsvp_reader.server.models import (
    ErrorResponse,
    ExportInfo,
    ExportKey,
    FocalWord,
    HealthResponse,
    HighlightedWord,
    JobCreatedResponse,
    JobResponse,
    KeyRequest,
    SeekRequest,
    SessionStateResponse,
    SettingsRequest,
    SettingsResponse,
    TextRequest,
    TextResponse,
)
from rsvp_reader.session import ReaderSession

logger = logging.getLogger(__name__)

CLEANUP_INTERVAL_S = 300
MAX_NOTICES = 20


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _job_to_response(job: Job) -> JobResponse:
    """Convert an internal Job dataclass to a JobResponse model."""
    return JobResponse(
        id=job.id,
        status=job.status.value,
        percent=job.percent,
        eta_seconds=job.eta_seconds,
        eta_label=format_eta(job.eta_seconds),
        paragraphs=job.paragraphs,
        failed_count=job.failed_count,
        message=job.message,
        error=job.error,
        created_at=job.created_at,
    )


def _state_response(session: ReaderSession, notices) -> SessionStateResponse:  # noqa: ANN001
    snapshot = session.engine.snapshot()
    prefix, focal, suffix = split_focal(snapshot.current_word)
    progress = reading_progress(snapshot.current_word_index, snapshot.word_count, session.wpm)
    return SessionStateResponse(
        state=snapshot.playback_state.value,
        current_word_index=snapshot.current_word_index,
        current_paragraph_index=snapshot.current_paragraph_index,
        seeked_while_paused=snapshot.seeked_while_paused,
        previous_word=snapshot.previous_word,
        current_word=snapshot.current_word,
        next_word=snapshot.next_word,
        focal=FocalWord(prefix=prefix, focal=focal, suffix=suffix),
        word_count=snapshot.word_count,
        percent=round(progress.percent, 1),
        remaining=progress.label,
        audio_ready=session.is_audio_ready,
        notices=list(notices),
    )


def _settings_response(session: ReaderSession) -> SettingsResponse:
    return SettingsResponse(
        engine=session.engine_kind,
        voice=session.voice,
        wpm=session.wpm,
        concurrency=session.concurrency,
        audio_ready=session.is_audio_ready,
    )


async def _run_preprocess(job_id: str, store: JobStore, session: ReaderSession, client) -> None:  # noqa: ANN001
    """Background task: prepare audio and record the outcome on the job.

    RULES:
    - Batch failure and unexpected errors mark the job failed, never raise
    - A run overtaken by a text/settings change completes with ready=False
    """
    store.update_job(job_id, status=JobStatus.PROCESSING)
    try:
        report = await session.preprocess(
            on_progress=store.progress_callback(job_id),
            client=client,
        )
    except BatchFailedError as exc:
        logger.error("Preprocess job %s produced no audio", job_id)
        store.update_job(
            job_id,
            status=JobStatus.FAILED,
            error=str(exc),
            paragraphs=session.document.paragraph_count,
            failed_count=session.document.paragraph_count,
        )
        return
    except Exception as exc:
        logger.exception("Preprocess job %s failed", job_id)
        store.update_job(job_id, status=JobStatus.FAILED, error=str(exc))
        return

    store.update_job(
        job_id,
        status=JobStatus.COMPLETED if report.ready else JobStatus.FAILED,
        percent=100,
        eta_seconds=None,
        paragraphs=report.paragraphs,
        failed_count=report.failed_count,
        message=report.message,
        error=None if report.ready else report.message,
    )


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(session_factory: Callable[..., ReaderSession] = ReaderSession) -> FastAPI:
    """Build the API around a fresh session.

    Args:
        session_factory: Called with on_notice=...; tests pass a factory
            that injects fake audio devices and a stubbed client.
    """
    notices: deque = deque(maxlen=MAX_NOTICES)
    session = session_factory(on_notice=notices.append)
    job_store = JobStore()

    async def _periodic_cleanup() -> None:
        while True:
            await asyncio.sleep(CLEANUP_INTERVAL_S)
            job_store.cleanup_expired()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        task = asyncio.create_task(_periodic_cleanup())
        yield
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            logger.debug("Job cleanup task stopped")
        session.close()

    app = FastAPI(
        lifespan=lifespan,
        title="RSVP Reader API",
        description=(
            "Drive a speed-reading session over HTTP: submit text, choose a "
            "voice, prepare audio, then play, pause and seek while polling "
            "the current word."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.session = session
    app.state.job_store = job_store
    app.state.notices = notices

    # -----------------------------------------------------------------------
    # Endpoints: Session
    # -----------------------------------------------------------------------

    @app.put(
        "/session/text",
        response_model=TextResponse,
        tags=["session"],
        summary="Replace the article text",
        description="Segments the text, stops playback and discards prepared audio.",
        responses={400: {"model": ErrorResponse, "description": "No readable words"}},
    )
    async def put_text(body: TextRequest) -> TextResponse:
        document = session.set_text(body.text)
        if document.word_count == 0:
            raise HTTPException(status_code=400, detail="The text contains no readable words.")
        return TextResponse(
            word_count=document.word_count,
            paragraph_count=document.paragraph_count,
        )

    @app.put(
        "/session/settings",
        response_model=SettingsResponse,
        tags=["session"],
        summary="Update voice and speed settings",
        description=(
            "Changing engine, voice or WPM discards prepared audio; "
            "omitted fields are unchanged."
        ),
        responses={
            400: {"model": ErrorResponse, "description": "Unknown voice"},
            409: {"model": ErrorResponse, "description": "Audio is being processed"},
        },
    )
    async def put_settings(body: SettingsRequest) -> SettingsResponse:
        if any(j.status in (JobStatus.PENDING, JobStatus.PROCESSING) for j in job_store.list_jobs()):
            raise HTTPException(status_code=409, detail="Audio is being processed.")
        try:
            session.update_settings(
                engine_kind=body.engine.value if body.engine is not None else None,
                voice=body.voice,
                wpm=body.wpm,
                concurrency=body.concurrency,
            )
        except ConfigurationError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        return _settings_response(session)

    @app.get(
        "/session/settings",
        response_model=SettingsResponse,
        tags=["session"],
        summary="Current settings",
    )
    async def get_settings() -> SettingsResponse:
        return _settings_response(session)

    @app.post(
        "/session/preprocess",
        response_model=JobCreatedResponse,
        status_code=202,
        tags=["session"],
        summary="Prepare audio for the current text",
        description=(
            "Starts background synthesis of every paragraph (remote voice) or "
            "readies the local voice. Poll GET /jobs/{id} for progress."
        ),
        responses={
            400: {"model": ErrorResponse, "description": "No text loaded"},
            409: {"model": ErrorResponse, "description": "A job is already running"},
            422: {"model": ErrorResponse, "description": "Missing credentials"},
        },
    )
    async def preprocess(background_tasks: BackgroundTasks) -> JobCreatedResponse:
        if session.document.word_count == 0:
            raise HTTPException(status_code=400, detail="Enter some text before processing audio.")

        client = None
        if session.engine_kind == "remote":
            try:
                client = session.new_client()
            except ConfigurationError as exc:
                raise HTTPException(status_code=422, detail=str(exc))

        try:
            job = job_store.create_job(
                settings={
                    "engine": session.engine_kind,
                    "voice": session.voice,
                    "wpm": session.wpm,
                    "concurrency": session.concurrency,
                }
            )
        except RuntimeError as exc:
            raise HTTPException(status_code=409, detail=str(exc))
        except ValueError as exc:
            raise HTTPException(status_code=429, detail=str(exc))

        background_tasks.add_task(_run_preprocess, job.id, job_store, session, client)
        return JobCreatedResponse(id=job.id, status=job.status.value)

    @app.get(
        "/jobs/{job_id}",
        response_model=JobResponse,
        tags=["jobs"],
        summary="Get preprocess job status",
        responses={404: {"model": ErrorResponse, "description": "Job not found"}},
    )
    async def get_job(job_id: str) -> JobResponse:
        job = job_store.get_job(job_id)
        if job is None:
            raise HTTPException(status_code=404, detail="Job not found: {}".format(job_id))
        return _job_to_response(job)

    # -----------------------------------------------------------------------
    # Endpoints: Playback
    # -----------------------------------------------------------------------

    def _rejected(detail: str) -> HTTPException:
        return HTTPException(status_code=409, detail=detail)

    @app.post(
        "/session/play",
        response_model=SessionStateResponse,
        tags=["playback"],
        summary="Play or resume",
        responses={409: {"model": ErrorResponse, "description": "Already playing or audio not ready"}},
    )
    async def play() -> SessionStateResponse:
        if not session.engine.play():
            detail = notices[-1] if notices and not session.is_audio_ready else "Cannot play now."
            raise _rejected(detail)
        return _state_response(session, notices)

    @app.post(
        "/session/pause",
        response_model=SessionStateResponse,
        tags=["playback"],
        summary="Pause in place",
        responses={409: {"model": ErrorResponse, "description": "Not playing"}},
    )
    async def pause() -> SessionStateResponse:
        if not session.engine.pause():
            raise _rejected("Playback is not running.")
        return _state_response(session, notices)

    @app.post(
        "/session/stop",
        response_model=SessionStateResponse,
        tags=["playback"],
        summary="Stop and rewind to the first word",
    )
    async def stop() -> SessionStateResponse:
        session.engine.stop()
        return _state_response(session, notices)

    @app.post(
        "/session/seek",
        response_model=SessionStateResponse,
        tags=["playback"],
        summary="Move the cursor",
        description="Absolute (index) or relative (delta) seek; rejected while playing.",
        responses={409: {"model": ErrorResponse, "description": "Playing or no text"}},
    )
    async def seek(body: SeekRequest) -> SessionStateResponse:
        if body.index is not None:
            accepted = session.engine.seek(body.index)
        else:
            accepted = session.engine.seek_by(body.delta)
        if not accepted:
            raise _rejected("Seeking is only possible while stopped or paused.")
        return _state_response(session, notices)

    @app.post(
        "/session/key",
        response_model=SessionStateResponse,
        tags=["playback"],
        summary="Send one reader key press",
        description=(
            "Keyboard mapping shared with the terminal reader: space toggles "
            "play/pause, escape stops, right/left seek one word (ten with shift)."
        ),
        responses={409: {"model": ErrorResponse, "description": "Key has no effect now"}},
    )
    async def send_key(body: KeyRequest) -> SessionStateResponse:
        if not handle_key(session.engine, body.key.value, shift=body.shift):
            detail = "Key {!r} has no effect while {}.".format(body.key.value, session.engine.state.value)
            raise _rejected(detail)
        return _state_response(session, notices)

    @app.get(
        "/session/words",
        response_model=List[HighlightedWord],
        tags=["playback"],
        summary="Full text with the current word marked",
    )
    async def get_words() -> List[HighlightedWord]:
        snapshot = session.engine.snapshot()
        return [
            HighlightedWord(index=index, word=word, current=current)
            for index, word, current in highlighted_words(
                session.document.words, snapshot.current_word_index
            )
        ]

    @app.get(
        "/session/state",
        response_model=SessionStateResponse,
        tags=["playback"],
        summary="Current cursor and display data",
    )
    async def get_state() -> SessionStateResponse:
        return _state_response(session, notices)

    # -----------------------------------------------------------------------
    # Endpoints: Exports
    # -----------------------------------------------------------------------

    @app.get(
        "/session/exports",
        response_model=List[ExportInfo],
        tags=["exports"],
        summary="List available exports",
    )
    async def list_exports() -> List[ExportInfo]:
        return [
            ExportInfo(key=key, name=exporter_cls().name)
            for key, exporter_cls in sorted(EXPORTERS.items())
        ]

    @app.get(
        "/session/exports/{key}",
        tags=["exports"],
        summary="Download an export of the prepared audio",
        responses={404: {"model": ErrorResponse, "description": "No prepared audio"}},
    )
    async def download_export(key: ExportKey) -> Response:
        try:
            outputs = session.export(key.value)
        except LookupError as exc:
            raise HTTPException(status_code=404, detail=str(exc))
        output = outputs[0]
        filename = "article{}".format(output.suffix)
        return Response(
            content=output.content,
            media_type=output.media_type,
            headers={"Content-Disposition": 'attachment; filename="{}"'.format(filename)},
        )

    # -----------------------------------------------------------------------
    # Endpoints: Health
    # -----------------------------------------------------------------------

    @app.get(
        "/health",
        response_model=HealthResponse,
        tags=["health"],
        summary="Health check",
    )
    async def health_check() -> HealthResponse:
        return HealthResponse(status="ok", version=__version__)

    return app


def run_api(host: str = "0.0.0.0", port: int = 8000) -> None:
    """Serve a fresh app with uvicorn (``python -m rsvp_reader --serve``)."""
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    uvicorn.run(create_app(), host=host, port=port)
