"""FastAPI application serving the CourseHub catalog and admin API."""

from __future__ import annotations

import asyncio
import contextlib
import contextvars
import functools
import hmac
import logging
import os
import sys
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import (
    Depends,
    FastAPI,
    File,
    Form,
    Request,
    UploadFile,
)
from fastapi import status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel, Field
from starlette.datastructures import FormData
from starlette.exceptions import HTTPException
from starlette.types import ASGIApp, Receive, Scope, Send

from ..config import AppConfig
from ..errors import CourseHubError, NotFoundError, StoreError, ValidationError
from ..services.blobs import BlobStore, StoredBlob, build_blob_store, discard_blob
from ..services.events import emit_db_event, emit_structured_event
from ..services.naming import title_from_filename
from ..services.storage import CatalogRepository, CourseRecord, VideoRecord


_DEFAULT_MAX_UPLOAD_BYTES = 2 * 1024 * 1024 * 1024
_MAX_THUMBNAIL_BYTES = 5 * 1024 * 1024

# Replaced by create_app() with AppConfig.max_upload_bytes.
_MAX_UPLOAD_BYTES = _DEFAULT_MAX_UPLOAD_BYTES


def get_max_upload_bytes() -> int:
    """Return the configured maximum upload size in bytes."""

    return int(_MAX_UPLOAD_BYTES)


def set_max_upload_bytes(value: int) -> None:
    global _MAX_UPLOAD_BYTES
    _MAX_UPLOAD_BYTES = int(value)


_REQUEST_ID_VAR: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "coursehub_request_id",
    default=None,
)
_ACTOR_VAR: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "coursehub_actor",
    default=None,
)


def _new_correlation_id() -> str:
    return uuid.uuid4().hex


def _collect_correlation_context() -> Dict[str, str]:
    context: Dict[str, str] = {}
    request_id = _REQUEST_ID_VAR.get()
    if request_id:
        context["request_id"] = request_id
    actor = _ACTOR_VAR.get()
    if actor:
        context["actor"] = actor
    return context


class ContextualLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that injects the request correlation into records."""

    def process(self, msg: Any, kwargs: Dict[str, Any]) -> tuple[Any, Dict[str, Any]]:  # type: ignore[override]
        extra: Dict[str, Any] = dict(self.extra or {})
        provided = kwargs.get("extra")
        if isinstance(provided, dict):
            extra.update(provided)
        for key, value in _collect_correlation_context().items():
            extra.setdefault(key, value)
        kwargs["extra"] = extra
        return msg, kwargs


LOGGER = ContextualLoggerAdapter(logging.getLogger(__name__), {})
EVENT_LOGGER = ContextualLoggerAdapter(logging.getLogger("coursehub.events.api"), {})


def _log_event(message: str, **context: Any) -> None:
    emit_structured_event(
        "APP_EVENT",
        message,
        payload=context,
        correlation=_collect_correlation_context(),
        logger=EVENT_LOGGER,
    )


class LargeUploadRequest(Request):
    """Request subclass that lifts the multipart part limit to the upload limit."""

    async def _get_form(
        self,
        *,
        max_files: int | float = 1000,
        max_fields: int | float = 1000,
        max_part_size: int = 1024 * 1024,
    ) -> FormData:
        configured_limit = get_max_upload_bytes()
        effective_limit = max(configured_limit, int(max_part_size)) if configured_limit > 0 else sys.maxsize
        return await super()._get_form(
            max_files=max_files,
            max_fields=max_fields,
            max_part_size=effective_limit,
        )


class RequestContextMiddleware:
    """Assign a correlation identifier to each request and expose it via contextvars."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        request_id = _new_correlation_id()
        scope.setdefault("state", {})["request_id"] = request_id
        method = scope.get("method")
        request_token = _REQUEST_ID_VAR.set(request_id)
        actor_token = _ACTOR_VAR.set(f"request:{method}" if method else "request")
        try:
            await self.app(scope, receive, send)
        finally:
            _ACTOR_VAR.reset(actor_token)
            _REQUEST_ID_VAR.reset(request_token)


class UploadLimitMiddleware:
    """Reject request bodies whose declared length exceeds the upload limit."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") == "http" and scope.get("method") in {"POST", "PUT"}:
            limit = get_max_upload_bytes()
            declared = dict(scope.get("headers") or []).get(b"content-length")
            if limit > 0 and declared is not None:
                try:
                    length = int(declared)
                except ValueError:
                    length = 0
                if length > limit:
                    LOGGER.warning("Rejecting %s byte request body (limit %s)", length, limit)
                    response = JSONResponse(
                        {"success": False, "message": "Upload exceeds the maximum allowed size."},
                        status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                    )
                    await response(scope, receive, send)
                    return
        await self.app(scope, receive, send)


def _envelope(
    data: Any = None,
    *,
    message: Optional[str] = None,
    count: Optional[int] = None,
) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": True}
    if message is not None:
        body["message"] = message
    if count is not None:
        body["count"] = count
    if data is not None:
        body["data"] = data
    return body


def _failure(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"success": False, "message": message}, status_code=status_code)


def _serialize_course(course: CourseRecord, videos: Optional[List[VideoRecord]] = None) -> Dict[str, Any]:
    payload = course.to_dict()
    if videos is not None:
        payload["videos"] = [_serialize_video(video) for video in videos]
    return payload


def _serialize_video(video: VideoRecord) -> Dict[str, Any]:
    return video.to_dict()


def _video_link(video: Optional[VideoRecord]) -> Optional[Dict[str, Any]]:
    if video is None:
        return None
    return {"id": video.id, "title": video.title, "position": video.position}


def _resolve_storage_path(root: Path, relative_path: str) -> Path:
    root_path = root.resolve()
    candidate = (root_path / relative_path).resolve()
    candidate.relative_to(root_path)
    return candidate


def _copy_upload(store: BlobStore, upload: UploadFile, folder: str) -> StoredBlob:
    source = upload.file
    with contextlib.suppress(OSError, ValueError):
        source.seek(0)
    return store.upload(source, upload.filename or "upload", upload.content_type, folder=folder)


async def _persist_upload(store: BlobStore, upload: UploadFile, *, folder: str) -> StoredBlob:
    """Hand an uploaded file to the blob store without blocking the event loop."""

    loop = asyncio.get_running_loop()
    try:
        return await loop.run_in_executor(
            None, functools.partial(_copy_upload, store, upload, folder)
        )
    finally:
        await upload.close()


def _upload_size(upload: UploadFile) -> int:
    if upload.size is not None:
        return int(upload.size)
    source = upload.file
    position = source.tell()
    source.seek(0, os.SEEK_END)
    size = source.tell()
    source.seek(position)
    return size


class CourseCreatePayload(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = ""
    category: Optional[str] = None
    thumbnail: Optional[str] = None
    is_published: bool = False


class CourseUpdatePayload(BaseModel):
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    category: Optional[str] = None
    thumbnail: Optional[str] = None
    is_published: Optional[bool] = None
    position: Optional[int] = None


class CourseReorderPayload(BaseModel):
    course_ids: List[int]


class VideoCreatePayload(BaseModel):
    course_id: int
    title: str = Field(..., min_length=1)
    video_key: str = Field(..., min_length=1)
    description: str = ""
    video_url: Optional[str] = None
    video_duration: Optional[str] = None
    notes_key: Optional[str] = None
    notes_title: Optional[str] = None
    thumbnail: Optional[str] = None
    is_published: bool = True


class VideoUpdatePayload(BaseModel):
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    video_duration: Optional[str] = None
    notes_title: Optional[str] = None
    thumbnail: Optional[str] = None
    is_published: Optional[bool] = None
    position: Optional[int] = None


class VideoReorderPayload(BaseModel):
    video_ids: List[int]
    course_id: Optional[int] = None


def _normalize_root_path(value: Optional[str]) -> str:
    cleaned = (value or "").strip().strip("/")
    return f"/{cleaned}" if cleaned else ""


def _supplied_fields(payload: BaseModel) -> Dict[str, Any]:
    """Return only the fields the client actually sent."""

    return {name: getattr(payload, name) for name in payload.model_fields_set}


def create_app(
    repository: CatalogRepository,
    *,
    config: AppConfig,
    blob_store: Optional[BlobStore] = None,
    root_path: str | None = None,
) -> FastAPI:
    """Return a configured FastAPI application."""

    normalized_root = _normalize_root_path(root_path)
    app = FastAPI(
        title="CourseHub",
        description="Video courses with PDF notes",
        root_path=normalized_root,
        request_class=LargeUploadRequest,
    )
    set_max_upload_bytes(config.max_upload_bytes)

    store: BlobStore = blob_store if blob_store is not None else build_blob_store(config)
    app.state.blob_store = store
    app.state.repository = repository

    def _repository_event_emitter(action: str, **kwargs: Any) -> None:
        emit_db_event(action, correlation=_collect_correlation_context(), level=logging.DEBUG, **kwargs)

    repository.configure_event_emitter(_repository_event_emitter)

    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(UploadLimitMiddleware)

    @app.exception_handler(HTTPException)
    async def _http_error(request: Request, exc: HTTPException) -> JSONResponse:
        return _failure(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        problems = []
        for error in exc.errors():
            location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
            problems.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
        return _failure(status.HTTP_400_BAD_REQUEST, "; ".join(problems) or "Invalid request")

    @app.exception_handler(ValidationError)
    async def _validation_error(request: Request, exc: ValidationError) -> JSONResponse:
        return _failure(status.HTTP_400_BAD_REQUEST, str(exc))

    @app.exception_handler(NotFoundError)
    async def _not_found(request: Request, exc: NotFoundError) -> JSONResponse:
        return _failure(status.HTTP_404_NOT_FOUND, str(exc))

    @app.exception_handler(StoreError)
    async def _store_error(request: Request, exc: StoreError) -> JSONResponse:
        LOGGER.error("Store failure on %s %s: %s", request.method, request.url.path, exc)
        return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))

    @app.exception_handler(CourseHubError)
    async def _application_error(request: Request, exc: CourseHubError) -> JSONResponse:
        LOGGER.error("Unhandled application error: %s", exc)
        return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))

    @app.exception_handler(Exception)
    async def _unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        LOGGER.exception("Unexpected failure on %s %s", request.method, request.url.path)
        return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")

    def _bearer_token(request: Request) -> Optional[str]:
        header = request.headers.get("authorization") or ""
        scheme, _, token = header.partition(" ")
        token = token.strip()
        if scheme.lower() != "bearer" or not token:
            return None
        return token

    def _token_matches(token: str) -> bool:
        expected = config.admin_token
        if not expected:
            return False
        return hmac.compare_digest(token.encode("utf-8"), expected.encode("utf-8"))

    async def _is_privileged(request: Request) -> bool:
        token = _bearer_token(request)
        privileged = token is not None and _token_matches(token)
        if privileged:
            _ACTOR_VAR.set("admin")
        return privileged

    async def _require_admin(request: Request) -> None:
        token = _bearer_token(request)
        if token is None:
            raise HTTPException(status_code=401, detail="Not authorized. No token provided.")
        if not _token_matches(token):
            raise HTTPException(status_code=403, detail="Not authorized. Invalid token.")
        _ACTOR_VAR.set("admin")

    async def _discard(key: Optional[str], reason: str) -> None:
        if not key:
            return
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(
            None, functools.partial(discard_blob, store, key, reason=reason)
        )

    # ------------------------------------------------------------------
    # Health and auth
    # ------------------------------------------------------------------
    @app.get("/api/health")
    async def health() -> Dict[str, Any]:
        return _envelope(message="CourseHub API is running", data={"blob_backend": config.blob_backend})

    @app.get("/api/auth/verify", dependencies=[Depends(_require_admin)])
    async def verify_token() -> Dict[str, Any]:
        return _envelope(message="Token is valid", data={"role": "admin"})

    # ------------------------------------------------------------------
    # Courses
    # ------------------------------------------------------------------
    @app.get("/api/courses")
    async def list_courses(privileged: bool = Depends(_is_privileged)) -> Dict[str, Any]:
        courses = repository.list_courses(privileged=privileged)
        _log_event("Listed courses", count=len(courses), privileged=privileged)
        return _envelope([_serialize_course(course) for course in courses], count=len(courses))

    @app.get("/api/courses/{course_id}")
    async def get_course(course_id: int, privileged: bool = Depends(_is_privileged)) -> Dict[str, Any]:
        course = repository.require_course(course_id, privileged=privileged)
        videos = repository.list_videos(course_id, privileged=privileged)
        return _envelope(_serialize_course(course, videos))

    @app.post(
        "/api/courses",
        status_code=status.HTTP_201_CREATED,
        dependencies=[Depends(_require_admin)],
    )
    async def create_course(payload: CourseCreatePayload) -> Dict[str, Any]:
        course = repository.add_course(
            payload.title,
            payload.description,
            category=payload.category,
            thumbnail=payload.thumbnail,
            is_published=payload.is_published,
        )
        _log_event("Created course", course_id=course.id, position=course.position)
        return _envelope(_serialize_course(course), message="Course created successfully.")

    @app.put("/api/courses/reorder", dependencies=[Depends(_require_admin)])
    async def reorder_courses(payload: CourseReorderPayload) -> Dict[str, Any]:
        touched = repository.reorder_courses(payload.course_ids)
        _log_event("Reordered courses", requested=len(payload.course_ids), touched=touched)
        return _envelope(message="Courses reordered successfully.", count=touched)

    @app.put("/api/courses/{course_id}", dependencies=[Depends(_require_admin)])
    async def update_course(course_id: int, payload: CourseUpdatePayload) -> Dict[str, Any]:
        updates = _supplied_fields(payload)
        if updates.get("is_published") is None:
            updates.pop("is_published", None)
        if updates.get("position") is None:
            updates.pop("position", None)
        course = repository.update_course(course_id, **updates)
        _log_event("Updated course", course_id=course_id, fields=sorted(updates))
        return _envelope(_serialize_course(course), message="Course updated successfully.")

    @app.delete("/api/courses/{course_id}", dependencies=[Depends(_require_admin)])
    async def delete_course(course_id: int) -> Dict[str, Any]:
        course, videos = repository.remove_course(course_id)
        for video in videos:
            await _discard(video.video_key, f"course {course_id} deleted")
            await _discard(video.notes_key, f"course {course_id} deleted")
        await _discard(course.thumbnail_key, f"course {course_id} deleted")
        _log_event("Deleted course", course_id=course_id, video_count=len(videos))
        return _envelope(message="Course and all its videos deleted successfully.")

    @app.post("/api/courses/{course_id}/thumbnail", dependencies=[Depends(_require_admin)])
    async def upload_thumbnail(
        course_id: int,
        thumbnail: Optional[UploadFile] = File(None),
    ) -> Dict[str, Any]:
        if thumbnail is None:
            raise HTTPException(status_code=400, detail="Please upload an image.")
        course = repository.require_course(course_id, privileged=True)
        if not (thumbnail.content_type or "").startswith("image/"):
            await thumbnail.close()
            raise HTTPException(status_code=400, detail="Only images are allowed.")
        if _upload_size(thumbnail) > _MAX_THUMBNAIL_BYTES:
            await thumbnail.close()
            raise HTTPException(status_code=413, detail="Thumbnail exceeds the 5 MB limit.")

        stored = await _persist_upload(store, thumbnail, folder="thumbnails")
        try:
            updated = repository.update_course_thumbnail(
                course_id, thumbnail=stored.url, thumbnail_key=stored.key
            )
        except CourseHubError:
            await _discard(stored.key, "thumbnail record update failed")
            raise
        await _discard(course.thumbnail_key, "thumbnail replaced")
        _log_event("Uploaded course thumbnail", course_id=course_id, key=stored.key)
        return _envelope(_serialize_course(updated), message="Thumbnail uploaded successfully.")

    # ------------------------------------------------------------------
    # Videos
    # ------------------------------------------------------------------
    @app.get("/api/videos/course/{course_id}")
    async def list_course_videos(course_id: int, privileged: bool = Depends(_is_privileged)) -> Dict[str, Any]:
        videos = repository.list_videos(course_id, privileged=privileged)
        return _envelope([_serialize_video(video) for video in videos], count=len(videos))

    @app.get("/api/videos/{video_id}")
    async def get_video(video_id: int, privileged: bool = Depends(_is_privileged)) -> Dict[str, Any]:
        video = repository.require_video(video_id, privileged=privileged)
        course = repository.get_course(video.course_id, privileged=privileged)
        previous, following = repository.get_adjacent_videos(video, privileged=privileged)
        payload = _serialize_video(video)
        payload["course"] = {"id": course.id, "title": course.title} if course else None
        payload["prev_video"] = _video_link(previous)
        payload["next_video"] = _video_link(following)
        return _envelope(payload)

    @app.post(
        "/api/videos",
        status_code=status.HTTP_201_CREATED,
        dependencies=[Depends(_require_admin)],
    )
    async def create_video(payload: VideoCreatePayload) -> Dict[str, Any]:
        video = repository.add_video(
            payload.course_id,
            payload.title,
            payload.video_key,
            description=payload.description,
            video_url=payload.video_url or store.url_for(payload.video_key),
            video_duration=payload.video_duration,
            notes_key=payload.notes_key,
            notes_url=store.url_for(payload.notes_key) if payload.notes_key else None,
            notes_title=payload.notes_title,
            thumbnail=payload.thumbnail,
            is_published=payload.is_published,
        )
        _log_event("Registered video", video_id=video.id, course_id=video.course_id)
        return _envelope(_serialize_video(video), message="Video created successfully.")

    @app.post(
        "/api/videos/upload",
        status_code=status.HTTP_201_CREATED,
        dependencies=[Depends(_require_admin)],
    )
    async def upload_video(
        video: Optional[UploadFile] = File(None),
        course_id: Optional[int] = Form(None),
        title: Optional[str] = Form(None),
        description: str = Form(""),
    ) -> Dict[str, Any]:
        if video is None:
            raise HTTPException(status_code=400, detail="Please upload a video file.")
        if course_id is None:
            await video.close()
            raise HTTPException(status_code=400, detail="Course ID is required.")
        try:
            repository.require_course(course_id, privileged=True)
        except NotFoundError:
            await video.close()
            raise

        filename = video.filename or "video"
        _log_event("Uploading video", course_id=course_id, filename=filename)
        stored = await _persist_upload(store, video, folder="videos")
        try:
            record = repository.add_video(
                course_id,
                (title or "").strip() or title_from_filename(filename),
                stored.key,
                description=description,
                video_url=stored.url,
            )
        except CourseHubError:
            await _discard(stored.key, "video record creation failed")
            raise
        _log_event("Uploaded video", video_id=record.id, course_id=course_id, key=stored.key)
        return _envelope(_serialize_video(record), message="Video uploaded successfully.")

    @app.post("/api/videos/{video_id}/notes", dependencies=[Depends(_require_admin)])
    async def upload_notes(
        video_id: int,
        notes: Optional[UploadFile] = File(None),
        notes_title: Optional[str] = Form(None),
    ) -> Dict[str, Any]:
        if notes is None:
            raise HTTPException(status_code=400, detail="Please upload a PDF file.")
        filename = notes.filename or "notes.pdf"
        is_pdf = notes.content_type == "application/pdf" or filename.lower().endswith(".pdf")
        if not is_pdf:
            await notes.close()
            raise HTTPException(status_code=400, detail="Notes must be a PDF file.")
        try:
            video = repository.require_video(video_id, privileged=True)
        except NotFoundError:
            await notes.close()
            raise

        stored = await _persist_upload(store, notes, folder="notes")
        try:
            updated = repository.update_video_notes(
                video_id,
                notes_key=stored.key,
                notes_url=stored.url,
                notes_title=(notes_title or "").strip() or filename,
            )
        except CourseHubError:
            await _discard(stored.key, "notes record update failed")
            raise
        await _discard(video.notes_key, "notes replaced")
        _log_event("Uploaded notes", video_id=video_id, key=stored.key)
        return _envelope(_serialize_video(updated), message="Notes uploaded successfully.")

    @app.delete("/api/videos/{video_id}/notes", dependencies=[Depends(_require_admin)])
    async def remove_notes(video_id: int) -> Dict[str, Any]:
        video = repository.require_video(video_id, privileged=True)
        if not video.notes_key:
            raise HTTPException(status_code=400, detail="This video has no notes attached.")
        updated = repository.update_video_notes(
            video_id, notes_key=None, notes_url=None, notes_title=None
        )
        await _discard(video.notes_key, "notes removed")
        _log_event("Removed notes", video_id=video_id)
        return _envelope(_serialize_video(updated), message="Notes removed successfully.")

    @app.put("/api/videos/reorder", dependencies=[Depends(_require_admin)])
    async def reorder_videos(payload: VideoReorderPayload) -> Dict[str, Any]:
        touched = repository.reorder_videos(payload.video_ids, payload.course_id)
        _log_event(
            "Reordered videos",
            course_id=payload.course_id,
            requested=len(payload.video_ids),
            touched=touched,
        )
        return _envelope(message="Videos reordered successfully.", count=touched)

    @app.put("/api/videos/{video_id}", dependencies=[Depends(_require_admin)])
    async def update_video(video_id: int, payload: VideoUpdatePayload) -> Dict[str, Any]:
        updates = _supplied_fields(payload)
        if updates.get("is_published") is None:
            updates.pop("is_published", None)
        if updates.get("position") is None:
            updates.pop("position", None)
        video = repository.update_video(video_id, **updates)
        _log_event("Updated video", video_id=video_id, fields=sorted(updates))
        return _envelope(_serialize_video(video), message="Video updated successfully.")

    @app.delete("/api/videos/{video_id}", dependencies=[Depends(_require_admin)])
    async def delete_video(video_id: int) -> Dict[str, Any]:
        video = repository.remove_video(video_id)
        await _discard(video.video_key, f"video {video_id} deleted")
        await _discard(video.notes_key, f"video {video_id} deleted")
        _log_event("Deleted video", video_id=video_id, course_id=video.course_id)
        return _envelope(message="Video deleted successfully.")

    # ------------------------------------------------------------------
    # Local blob downloads
    # ------------------------------------------------------------------
    @app.get("/storage/{path:path}")
    async def serve_storage_file(path: str) -> FileResponse:
        if not path.startswith("uploads/"):
            raise HTTPException(status_code=404, detail="File not found")
        try:
            target = _resolve_storage_path(config.uploads_root, path[len("uploads/"):])
        except ValueError as error:
            raise HTTPException(status_code=404, detail="File not found") from error
        if not target.exists() or target.is_dir():
            raise HTTPException(status_code=404, detail="File not found")
        return FileResponse(target)

    return app


__all__ = ["create_app", "get_max_upload_bytes"]
