"""API routes for the conversion session: files, settings, runs and downloads."""
import logging
import uuid
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Body, Depends, File, HTTPException, Query, Request, Response, UploadFile

from imageflow.config import IMAGE_EXTENSIONS, MAX_IMAGE_SIZE_BYTES, MAX_IMAGES_PER_UPLOAD
from imageflow.conversion.formats import LOSSY_FORMATS, media_type_for, supported_output_formats
from imageflow.conversion.models import BatchConfig, SourceFile
from imageflow.db import (
    delete_session_data,
    get_run_items,
    get_session_runs,
    get_session_stats,
    record_run,
)
from imageflow.errors import BatchInProgressError, EmptyBatchError
from imageflow.session import ConversionSession, SessionStore

logger = logging.getLogger("imageflow.api")
router = APIRouter(prefix="/api", tags=["imageflow"])


def get_or_create_session_id(request: Request) -> str:
    """Use X-Session-ID header or generate and attach to request for response header."""
    sid = (request.headers.get("X-Session-ID") or "").strip()
    if sid:
        return sid
    sid = str(uuid.uuid4())
    request.state.session_id = sid
    return sid


def get_session_store(request: Request) -> SessionStore:
    return request.app.state.sessions


async def get_session(
    session_id: str = Depends(get_or_create_session_id),
    store: SessionStore = Depends(get_session_store),
) -> ConversionSession:
    """Session for the request, created if it does not exist yet."""
    return store.get_or_create(session_id)


async def find_session(
    session_id: str = Depends(get_or_create_session_id),
    store: SessionStore = Depends(get_session_store),
) -> Optional[ConversionSession]:
    """Session for the request if one exists. Read-only routes use this so they never create sessions."""
    return store.get(session_id)


def _is_image_upload(file: UploadFile) -> bool:
    """Same rule as the browser drop zone: an image/* content type, or a known image extension."""
    if (file.content_type or "").lower().startswith("image/"):
        return True
    return Path(file.filename or "").suffix.lower() in IMAGE_EXTENSIONS


def _items_payload(session: ConversionSession) -> list[dict]:
    return [item.to_dict() for item in session.list()]


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/limits")
def get_limits():
    """Return upload limits for the client."""
    return {
        "max_images_per_upload": MAX_IMAGES_PER_UPLOAD,
        "max_image_size_mb": MAX_IMAGE_SIZE_BYTES // (1024 * 1024),
        "max_image_size_bytes": MAX_IMAGE_SIZE_BYTES,
    }


@router.get("/formats")
def get_formats():
    output = supported_output_formats()
    return {
        "input": sorted(IMAGE_EXTENSIONS),
        "output": output,
        "lossy": [f for f in output if f in LOSSY_FORMATS],
    }


@router.post("/files")
async def upload_files(
    files: list[UploadFile] = File(...),
    session: ConversionSession = Depends(get_session),
):
    """Upload images into the session queue. Non-images are skipped, duplicates (same name and size) are ignored."""
    to_read: list[UploadFile] = []
    skipped: list[str] = []
    for file in files:
        if _is_image_upload(file):
            to_read.append(file)
        else:
            skipped.append(file.filename or "")
    if not to_read:
        raise HTTPException(400, "No image files uploaded")
    if len(to_read) > MAX_IMAGES_PER_UPLOAD:
        raise HTTPException(400, f"Max {MAX_IMAGES_PER_UPLOAD} images per upload (max {MAX_IMAGE_SIZE_BYTES // (1024 * 1024)} MB each)")

    max_mb = MAX_IMAGE_SIZE_BYTES // (1024 * 1024)
    sources: list[SourceFile] = []
    for file in to_read:
        chunks: list[bytes] = []
        total = 0
        while chunk := await file.read(1024 * 1024):
            total += len(chunk)
            if total > MAX_IMAGE_SIZE_BYTES:
                raise HTTPException(413, f"File too large: {file.filename} (max {max_mb} MB)")
            chunks.append(chunk)
        sources.append(SourceFile(name=file.filename or "image", data=b"".join(chunks), content_type=file.content_type))

    try:
        admitted = session.admit(sources)
    except BatchInProgressError as e:
        raise HTTPException(409, str(e))
    if skipped:
        logger.info("Skipped non-image uploads: %s", ", ".join(skipped))
    return {
        "admitted": [item.to_dict() for item in admitted],
        "duplicates": len(sources) - len(admitted),
        "skipped": skipped,
        "items": _items_payload(session),
    }


@router.get("/files")
async def list_files(session: Optional[ConversionSession] = Depends(find_session)):
    return {"items": _items_payload(session) if session else []}


@router.delete("/files")
async def clear_files(session: Optional[ConversionSession] = Depends(find_session)):
    if session is None:
        return {"ok": True}
    try:
        session.clear()
    except BatchInProgressError as e:
        raise HTTPException(409, str(e))
    return {"ok": True}


@router.get("/config")
async def get_config(session: Optional[ConversionSession] = Depends(find_session)):
    if session is None:
        return BatchConfig().to_dict()
    return session.config.to_dict()


@router.put("/config")
async def update_config(
    output_format: Optional[str] = Body(None, embed=True),
    quality: Optional[float] = Body(None, embed=True),
    session: ConversionSession = Depends(get_session),
):
    """Change output format and/or quality (0-1). Applies to items not converted yet."""
    try:
        if output_format is not None:
            session.set_output_format(output_format)
        if quality is not None:
            session.set_quality(quality)
    except ValueError as e:
        raise HTTPException(400, str(e))
    return session.config.to_dict()


@router.post("/convert")
async def convert(session: Optional[ConversionSession] = Depends(find_session)):
    """Convert every queued item in order. Failed items are reported, never abort the run."""
    if session is None:
        raise HTTPException(400, "No items to convert")
    try:
        stats = await session.run()
    except EmptyBatchError as e:
        raise HTTPException(400, str(e))
    except BatchInProgressError as e:
        raise HTTPException(409, str(e))
    items = session.list()
    run_id = None
    try:
        run_id = record_run(session.session_id, stats, items)
    except Exception as e:
        logger.exception("Could not record run history: %s", e)
    return {
        "run_id": run_id,
        "statistics": stats.to_dict(),
        "items": [item.to_dict() for item in items],
    }


@router.post("/convert/cancel")
async def cancel_convert(session: Optional[ConversionSession] = Depends(find_session)):
    if session is None:
        return {"cancelling": False}
    running = session.is_running
    session.cancel()
    return {"cancelling": running}


@router.get("/progress")
async def get_progress(session: Optional[ConversionSession] = Depends(find_session)):
    if session is None:
        return {"completed": 0, "total": 0, "fraction": 0.0, "running": False}
    completed, total = session.progress_counts
    return {
        "completed": completed,
        "total": total,
        "fraction": session.progress,
        "running": session.is_running,
    }


@router.get("/statistics")
async def get_statistics(session: Optional[ConversionSession] = Depends(find_session)):
    if session is None or session.statistics is None:
        raise HTTPException(404, "No conversion has run in this session")
    return session.statistics.to_dict()


@router.get("/converted")
async def list_converted(session: Optional[ConversionSession] = Depends(find_session)):
    """Converted items with their download names."""
    if session is None:
        return {"items": []}
    return {
        "items": [
            {
                "item_id": item.item_id,
                "filename": item.converted_name,
                "size": item.converted_size,
                "download_url": f"/api/download/{item.item_id}",
            }
            for item in session.registry.converted()
        ]
    }


@router.get("/download/{item_id}")
async def download_item(item_id: str, session: Optional[ConversionSession] = Depends(find_session)):
    """Download one converted file."""
    item = session.get_item(item_id) if session else None
    if item is None:
        raise HTTPException(404, "Item not found")
    if item.converted_bytes is None:
        raise HTTPException(404, "Item has not been converted")
    filename = item.converted_name
    return Response(
        content=item.converted_bytes,
        media_type=media_type_for(item.output_format),
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(filename)}"},
    )


@router.get("/session/stats")
def session_stats(session_id: str = Depends(get_or_create_session_id)):
    """Return aggregated run history for the current session."""
    return get_session_stats(session_id)


@router.get("/session/runs")
def session_runs(
    limit: int = Query(20, ge=1, le=200),
    session_id: str = Depends(get_or_create_session_id),
):
    """Return recent runs for the current session."""
    return {"runs": get_session_runs(session_id, limit=limit)}


@router.get("/session/runs/{run_id}")
def session_run_items(run_id: str, session_id: str = Depends(get_or_create_session_id)):
    """Item outcomes of one run of the current session."""
    items = get_run_items(session_id, run_id)
    if not items:
        raise HTTPException(404, "Run not found")
    return {"run_id": run_id, "items": items}


@router.delete("/session/data")
async def session_delete_data(
    session_id: str = Depends(get_or_create_session_id),
    store: SessionStore = Depends(get_session_store),
):
    """Delete the session's run history and drop its queued items."""
    try:
        store.drop(session_id)
    except BatchInProgressError as e:
        raise HTTPException(409, str(e))
    removed = delete_session_data(session_id)
    return {"ok": True, "runs_removed": removed, "message": "Session data cleared"}
