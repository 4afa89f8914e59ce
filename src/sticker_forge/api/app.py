"""FastAPI application factory."""

import base64
import binascii
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse

from sticker_forge.api.models import (
    BatchView,
    HistoryView,
    ImageKind,
    SessionView,
    StickerView,
    SubmitRequest,
)
from sticker_forge.app_logging import configure_logging
from sticker_forge.containers import AppContainer
from sticker_forge.domain.errors import ServiceUnavailableError, StickerNotFoundError
from sticker_forge.services.session import SessionController


def create_app(container: AppContainer) -> FastAPI:  # noqa: PLR0915
    """Create a FastAPI app configured with dependencies."""
    configure_logging(container.settings.log_level)
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    @app.exception_handler(StickerNotFoundError)
    async def not_found(request: Request, exc: StickerNotFoundError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"detail": f"Unknown id: {exc.args[0] if exc.args else ''}"},
        )

    @app.exception_handler(ServiceUnavailableError)
    async def unavailable(
        request: Request, exc: ServiceUnavailableError
    ) -> JSONResponse:
        logger.warning("Generation service unavailable: %s", exc)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": str(exc)},
        )

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.get("/stickers")
    async def list_stickers(request: Request) -> SessionView:
        """Return the live stickers, selection and batch notice."""
        return _session_view(_session(request))

    @app.post("/stickers", status_code=status.HTTP_202_ACCEPTED)
    async def submit(
        body: SubmitRequest, request: Request, wait: bool = False
    ) -> list[BatchView]:
        """Queue one batch of drafts per prompt found in the text."""
        session = _session(request)
        reference = _decode_reference(body.reference_image_b64)
        tasks = await session.submit(body.text, reference)
        if wait:
            await session.wait_until_idle()
        return [
            BatchView(
                batch_id=task.batch_id,
                prompt=task.prompt,
                sticker_ids=task.sticker_ids(),
            )
            for task in tasks
        ]

    @app.get("/stickers/{sticker_id}/image/{kind}")
    async def sticker_image(
        sticker_id: str, kind: ImageKind, request: Request
    ) -> Response:
        """Return one of a sticker's images as PNG."""
        sticker = _session(request).get(sticker_id)
        if sticker is None:
            raise StickerNotFoundError(sticker_id)
        image = {
            ImageKind.DRAFT: sticker.draft_image,
            ImageKind.MASK: sticker.mask_image,
            ImageKind.FINAL: sticker.final_image,
        }[kind]
        if image is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
        return Response(content=image, media_type="image/png")

    @app.post("/stickers/{sticker_id}/select")
    async def toggle_select(sticker_id: str, request: Request) -> dict[str, bool]:
        """Toggle a sticker's selection."""
        return {"selected": _session(request).toggle_select(sticker_id)}

    @app.post(
        "/stickers/{sticker_id}/regenerate", status_code=status.HTTP_202_ACCEPTED
    )
    async def regenerate(sticker_id: str, request: Request) -> BatchView:
        """Queue a new batch for the prompt behind a sticker."""
        task = _session(request).regenerate(sticker_id)
        return BatchView(
            batch_id=task.batch_id, prompt=task.prompt, sticker_ids=task.sticker_ids()
        )

    @app.post("/selection/all")
    async def select_all(request: Request) -> dict[str, list[str]]:
        """Select every drafted sticker."""
        return {"selected_ids": _session(request).select_all()}

    @app.delete("/selection")
    async def clear_selection(request: Request) -> dict[str, str]:
        """Clear the selection."""
        _session(request).clear_selection()
        return {"status": "ok"}

    @app.post("/selection/process")
    async def process_selected(request: Request) -> dict[str, str | None]:
        """Finish every selected sticker and report resulting statuses."""
        outcome = await _session(request).process_selected()
        return {
            sticker_id: (result.value if result else None)
            for sticker_id, result in outcome.items()
        }

    @app.delete("/session")
    async def clear_session(request: Request) -> dict[str, str]:
        """Drop stickers, selection and queued batches."""
        _session(request).clear_session()
        return {"status": "ok"}

    @app.get("/history")
    async def history(request: Request) -> list[HistoryView]:
        """Return submitted batches, oldest first."""
        return [HistoryView.from_record(r) for r in _session(request).history()]

    @app.post("/history/{batch_id}/restore")
    async def restore(batch_id: str, request: Request) -> dict[str, list[str]]:
        """Reinsert a batch's stickers into the live session."""
        session = _session(request)
        record = session.history_record(batch_id)
        return {"restored_ids": session.restore_from_history(record)}

    @app.delete("/error")
    async def dismiss_error(request: Request) -> dict[str, str]:
        """Dismiss the current batch failure notice."""
        _session(request).dismiss_error()
        return {"status": "ok"}

    return app


def _session(request: Request) -> SessionController:
    state_container: AppContainer = request.app.state.container
    return state_container.session


def _session_view(session: SessionController) -> SessionView:
    selected = set(session.selected_ids())
    return SessionView(
        stickers=[
            StickerView.from_entity(sticker, selected=sticker.id in selected)
            for sticker in session.stickers()
        ],
        selected_ids=session.selected_ids(),
        is_generating=session.is_generating,
        is_processing=any(
            sticker.status.is_processing
            for sticker in session.stickers()
            if sticker.id in selected
        ),
        error=session.error,
    )


def _decode_reference(encoded: str | None) -> bytes | None:
    """Decode an optional base64 reference image, accepting data URLs."""
    if not encoded:
        return None
    if encoded.startswith("data:") and "," in encoded:
        encoded = encoded.split(",", 1)[1]
    try:
        return base64.b64decode(encoded, validate=True)
    except binascii.Error as exc:
        raise HTTPException(
            status_code=422,
            detail="reference_image_b64 is not valid base64",
        ) from exc
