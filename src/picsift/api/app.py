"""FastAPI application factory."""

import logging
from collections import deque
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse

from picsift.api.models import (
    DeleteResponse,
    FailedDeleteView,
    FolderRequest,
    ResumeOffer,
    SessionView,
    StartRequest,
    StartResponse,
)
from picsift.app_logging import configure_logging
from picsift.containers import AppContainer
from picsift.domain.errors import (
    InvalidSessionStateError,
    RemoteOperationError,
    TriageError,
    is_critical_error,
)
from picsift.domain.sessions import EmptyQueue
from picsift.services.triage import TriageEngine

_UPCOMING_COUNT = 2
_MAX_ERRORS = 20


def create_app(container: AppContainer) -> FastAPI:  # noqa: PLR0915
    """Create a FastAPI app configured with dependencies."""
    configure_logging(container.settings.log_level)
    logger = logging.getLogger(__name__)
    engine = container.triage_engine
    errors: deque[str] = deque(maxlen=_MAX_ERRORS)

    def record_error(error: TriageError) -> None:
        errors.append(str(error))

    engine.on_error = record_error

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await app.state.container.triage_engine.wait_for_pending()
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    @app.exception_handler(TriageError)
    async def triage_error_handler(request: Request, exc: TriageError) -> JSONResponse:
        if isinstance(exc, InvalidSessionStateError):
            status_code = status.HTTP_409_CONFLICT
        elif is_critical_error(exc):
            status_code = status.HTTP_401_UNAUTHORIZED
        elif isinstance(exc, RemoteOperationError):
            logger.warning("Remote call failed: %s", exc)
            status_code = status.HTTP_502_BAD_GATEWAY
        else:
            status_code = status.HTTP_400_BAD_REQUEST
        return JSONResponse(
            status_code=status_code,
            content={
                "error": type(exc).__name__,
                "message": str(exc),
                "retryable": isinstance(exc, RemoteOperationError)
                and not is_critical_error(exc),
            },
        )

    def current_view() -> SessionView:
        view = _session_view(engine, list(errors))
        errors.clear()
        return view

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.get("/session")
    async def get_session() -> SessionView:
        """Return the live session, if any."""
        return current_view()

    @app.post("/session/offer")
    async def resume_offer(request: FolderRequest) -> ResumeOffer:
        """Report whether a persisted session can be resumed for a folder."""
        snapshot = engine.resumable_snapshot(request.folder)
        if snapshot is None:
            return ResumeOffer(resumable=False)
        return ResumeOffer(
            resumable=True,
            session_id=snapshot.session_id,
            index=snapshot.index,
            total_count=len(snapshot.queue),
            saved_at=snapshot.saved_at,
        )

    @app.post("/session/start")
    async def start_session(request: StartRequest) -> StartResponse:
        """Build a new review queue and start a session."""
        result = await engine.start(request.folder, fresh_start=request.fresh_start)
        build = result.build
        return StartResponse(
            session=current_view(),
            notice=result.notice,
            empty_reason=build.reason if isinstance(build, EmptyQueue) else None,
            truncated_from=None
            if isinstance(build, EmptyQueue)
            else build.truncated_from,
        )

    @app.post("/session/resume")
    async def resume_session(request: FolderRequest) -> SessionView:
        """Resume the persisted session for a folder."""
        if engine.resume(request.folder) is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="No resumable session for this folder",
            )
        return current_view()

    @app.post("/session/keep")
    async def keep() -> SessionView:
        """Keep the current photo."""
        engine.keep()
        return current_view()

    @app.post("/session/delete")
    async def delete(wait: bool = False) -> DeleteResponse:
        """Delete the current photo; confirmation runs in the background."""
        session = engine.session
        entry = session.current_entry if session else None
        task = engine.delete()
        outcome = await task if wait else None
        return DeleteResponse(session=current_view(), deleted=entry, outcome=outcome)

    @app.post("/session/retry-delete")
    async def retry_delete() -> DeleteResponse:
        """Re-issue the last failed delete."""
        pending = engine.failed_delete
        outcome = await engine.retry_failed_delete()
        return DeleteResponse(
            session=current_view(),
            deleted=pending.entry if pending else None,
            outcome=outcome,
        )

    @app.post("/session/undo")
    async def undo() -> SessionView:
        """Restore the most recently deleted photo."""
        await engine.undo()
        return current_view()

    @app.post("/session/reset")
    async def reset() -> SessionView:
        """Abandon the live session."""
        engine.reset()
        return current_view()

    @app.post("/progress/clear")
    async def clear_progress(request: FolderRequest) -> dict[str, str]:
        """Forget every decision made for a folder."""
        engine.clear_progress(request.folder)
        return {"status": "ok"}

    return app


def _session_view(engine: TriageEngine, errors: list[str]) -> SessionView:
    session = engine.session
    failed = engine.failed_delete
    failed_view = (
        FailedDeleteView(
            path=failed.path, session_id=failed.session_id, entry=failed.entry
        )
        if failed
        else None
    )
    if session is None:
        return SessionView(
            state=engine.state,
            failed_delete=failed_view,
            pending_deletes=engine.pending_deletes,
            errors=errors,
        )
    return SessionView(
        state=engine.state,
        session_id=session.id,
        folder=session.folder,
        cursor=session.cursor,
        total_count=len(session.queue),
        kept_count=session.kept_count,
        trashed_count=session.trashed_count,
        remaining_count=session.remaining_count,
        current=session.current_entry,
        upcoming=session.upcoming(_UPCOMING_COUNT),
        can_undo=bool(session.undo_stack) and not engine.undo_in_flight,
        undo_in_flight=engine.undo_in_flight,
        pending_deletes=engine.pending_deletes,
        failed_delete=failed_view,
        errors=errors,
    )
