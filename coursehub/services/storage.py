"""Persistence helpers backed by SQLite."""

from __future__ import annotations

import contextlib
import logging
import sqlite3
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from ..config import AppConfig
from ..errors import NotFoundError, StoreError, ValidationError


@dataclass
class CourseRecord:
    id: int
    title: str
    description: str
    category: Optional[str]
    thumbnail: Optional[str]
    thumbnail_key: Optional[str]
    is_published: bool
    position: int
    video_count: int
    created_at: str
    updated_at: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class VideoRecord:
    id: int
    course_id: int
    title: str
    description: str
    position: int
    video_key: str
    video_url: Optional[str]
    video_duration: Optional[str]
    notes_key: Optional[str]
    notes_url: Optional[str]
    notes_title: Optional[str]
    thumbnail: Optional[str]
    is_published: bool
    created_at: str
    updated_at: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


_MISSING = object()

_COURSE_COLUMNS = (
    "id, title, description, category, thumbnail, thumbnail_key, is_published, "
    "position, video_count, created_at, updated_at"
)
_VIDEO_COLUMNS = (
    "id, course_id, title, description, position, video_key, video_url, video_duration, "
    "notes_key, notes_url, notes_title, thumbnail, is_published, created_at, updated_at"
)
_DISPLAY_ORDER = "ORDER BY position ASC, created_at DESC, id DESC"


LOGGER = logging.getLogger(__name__)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def _course_from_row(row: sqlite3.Row) -> CourseRecord:
    values = dict(row)
    values["description"] = values.get("description") or ""
    values["is_published"] = bool(values["is_published"])
    values["video_count"] = int(values.get("video_count") or 0)
    return CourseRecord(**values)


def _video_from_row(row: sqlite3.Row) -> VideoRecord:
    values = dict(row)
    values["description"] = values.get("description") or ""
    values["is_published"] = bool(values["is_published"])
    return VideoRecord(**values)


def _require_title(title: Optional[str], *, entity: str) -> str:
    cleaned = (title or "").strip()
    if not cleaned:
        raise ValidationError(f"{entity} title is required")
    return cleaned


def _validate_identifier_list(ids: Any, *, field: str) -> List[int]:
    if not isinstance(ids, (list, tuple)):
        raise ValidationError(f"{field} must be a list of identifiers")
    validated: List[int] = []
    for value in ids:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(f"{field} must only contain integer identifiers")
        validated.append(value)
    if len(set(validated)) != len(validated):
        raise ValidationError(f"{field} contains duplicate identifiers")
    return validated


class CatalogRepository:
    """Repository for courses and their ordered videos."""

    def __init__(
        self,
        config: AppConfig,
        *,
        event_emitter: Optional[Callable[..., None]] = None,
    ) -> None:
        self._db_path = config.database_file
        self._event_emitter: Optional[Callable[..., None]] = event_emitter

    def configure_event_emitter(self, emitter: Optional[Callable[..., None]]) -> None:
        """Register the callable receiving one structured event per statement."""

        self._event_emitter = emitter

    @contextlib.contextmanager
    def _track_db_event(self, action: str, **payload: Any) -> Iterator[Dict[str, Any]]:
        if self._event_emitter is None:
            yield payload
            return

        started = time.perf_counter()
        event_payload: Dict[str, Any] = dict(payload)
        failed = False
        try:
            yield event_payload
        except Exception as exc:
            failed = True
            event_payload.setdefault("status", "error")
            event_payload.setdefault("error", f"{exc.__class__.__name__}: {exc}")
            raise
        finally:
            if not failed:
                event_payload.setdefault("status", "ok")
            self._event_emitter(
                action,
                payload={key: value for key, value in event_payload.items() if value is not None},
                duration_ms=(time.perf_counter() - started) * 1000.0,
            )

    @staticmethod
    def _summarize_sql(statement: str) -> str:
        collapsed = " ".join(statement.strip().split())
        return collapsed[:160] + ("…" if len(collapsed) > 160 else "")

    def _execute(
        self,
        connection: sqlite3.Connection,
        statement: str,
        parameters: Sequence[Any] | None = None,
        *,
        action: str,
        table: Optional[str] = None,
    ) -> sqlite3.Cursor:
        params: Tuple[Any, ...] = tuple(parameters or ())
        with self._track_db_event(
            action,
            table=table,
            sql=self._summarize_sql(statement),
            parameter_count=len(params),
        ) as event:
            try:
                cursor = connection.execute(statement, params)
            except sqlite3.Error as exc:
                raise StoreError(f"{action} failed: {exc}") from exc
            if cursor.rowcount is not None and cursor.rowcount >= 0:
                event["rowcount"] = int(cursor.rowcount)
            return cursor

    def _connect(self) -> sqlite3.Connection:
        LOGGER.debug("Opening SQLite connection to %s", self._db_path)
        try:
            connection = sqlite3.connect(self._db_path)
        except sqlite3.Error as exc:
            raise StoreError(f"Unable to open database {self._db_path}: {exc}") from exc
        connection.row_factory = sqlite3.Row
        self._execute(connection, "PRAGMA foreign_keys = ON", action="pragma_foreign_keys")
        return connection

    @contextlib.contextmanager
    def _session(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection that commits on success and is always closed."""

        connection = self._connect()
        try:
            yield connection
            connection.commit()
        except sqlite3.Error as exc:
            connection.rollback()
            raise StoreError(f"Database transaction failed: {exc}") from exc
        except BaseException:
            connection.rollback()
            raise
        finally:
            connection.close()

    def _next_position(
        self,
        connection: sqlite3.Connection,
        table: str,
        *,
        course_id: Optional[int] = None,
    ) -> int:
        query = f"SELECT COALESCE(MAX(position), -1) + 1 FROM {table}"
        params: List[Any] = []
        if course_id is not None:
            query += " WHERE course_id = ?"
            params.append(course_id)
        row = self._execute(
            connection, query, params, action=f"{table}.next_position", table=table
        ).fetchone()
        position = int(row[0] or 0) if row else 0
        LOGGER.debug("Next position for %s (course_id=%s) -> %s", table, course_id, position)
        return position

    def _fetch_course(self, connection: sqlite3.Connection, course_id: int) -> Optional[CourseRecord]:
        row = self._execute(
            connection,
            f"SELECT {_COURSE_COLUMNS} FROM courses WHERE id = ?",
            (course_id,),
            action="courses.get",
            table="courses",
        ).fetchone()
        return _course_from_row(row) if row else None

    def _fetch_video(self, connection: sqlite3.Connection, video_id: int) -> Optional[VideoRecord]:
        row = self._execute(
            connection,
            f"SELECT {_VIDEO_COLUMNS} FROM videos WHERE id = ?",
            (video_id,),
            action="videos.get",
            table="videos",
        ).fetchone()
        return _video_from_row(row) if row else None

    def _store_video_count(self, connection: sqlite3.Connection, course_id: int) -> int:
        row = self._execute(
            connection,
            "SELECT COUNT(*) FROM videos WHERE course_id = ?",
            (course_id,),
            action="videos.count_for_course",
            table="videos",
        ).fetchone()
        total = int(row[0]) if row else 0
        self._execute(
            connection,
            "UPDATE courses SET video_count = ? WHERE id = ?",
            (total, course_id),
            action="courses.video_count",
            table="courses",
        )
        LOGGER.debug("Course id=%s now holds %s videos", course_id, total)
        return total

    # ------------------------------------------------------------------
    # Courses
    # ------------------------------------------------------------------
    def add_course(
        self,
        title: str,
        description: str = "",
        *,
        category: Optional[str] = None,
        thumbnail: Optional[str] = None,
        is_published: bool = False,
    ) -> CourseRecord:
        title = _require_title(title, entity="Course")
        with self._track_db_event("add_course", table="courses", title=title) as event:
            with self._session() as connection:
                position = self._next_position(connection, "courses")
                now = _timestamp()
                cursor = self._execute(
                    connection,
                    "INSERT INTO courses(title, description, category, thumbnail, is_published,"
                    " position, video_count, created_at, updated_at)"
                    " VALUES (?, ?, ?, ?, ?, ?, 0, ?, ?)",
                    (title, description or "", category, thumbnail, int(bool(is_published)), position, now, now),
                    action="courses.insert",
                    table="courses",
                )
                course_id = int(cursor.lastrowid)
                event.update({"course_id": course_id, "position": position})
                LOGGER.debug("Course '%s' inserted with id=%s at position=%s", title, course_id, position)
                record = self._fetch_course(connection, course_id)
        assert record is not None
        return record

    def get_course(self, course_id: int, *, privileged: bool = False) -> Optional[CourseRecord]:
        with self._track_db_event("get_course", table="courses", course_id=course_id) as event:
            with self._session() as connection:
                record = self._fetch_course(connection, course_id)
            if record is not None and not privileged and not record.is_published:
                LOGGER.debug("Course id=%s hidden from unprivileged caller", course_id)
                record = None
            event["found"] = record is not None
            return record

    def require_course(self, course_id: int, *, privileged: bool = False) -> CourseRecord:
        record = self.get_course(course_id, privileged=privileged)
        if record is None:
            raise NotFoundError("Course not found.")
        return record

    def list_courses(
        self,
        *,
        privileged: bool = False,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[CourseRecord]:
        where = "" if privileged else " WHERE is_published = 1"
        statement = f"SELECT {_COURSE_COLUMNS} FROM courses{where} {_DISPLAY_ORDER}"
        params: List[Any] = []
        if limit is not None:
            statement += " LIMIT ? OFFSET ?"
            params.extend([int(limit), max(0, int(offset))])
        elif offset:
            statement += " LIMIT -1 OFFSET ?"
            params.append(max(0, int(offset)))
        with self._track_db_event("list_courses", table="courses", privileged=privileged) as event:
            with self._session() as connection:
                rows = self._execute(
                    connection, statement, params, action="courses.list", table="courses"
                ).fetchall()
            event["rowcount"] = len(rows)
            return [_course_from_row(row) for row in rows]

    def count_courses(self, *, privileged: bool = True) -> int:
        where = "" if privileged else " WHERE is_published = 1"
        with self._track_db_event("count_courses", table="courses", privileged=privileged):
            with self._session() as connection:
                row = self._execute(
                    connection,
                    f"SELECT COUNT(*) FROM courses{where}",
                    action="courses.count",
                    table="courses",
                ).fetchone()
            return int(row[0]) if row else 0

    def update_course(
        self,
        course_id: int,
        *,
        title: Optional[str] | object = _MISSING,
        description: Optional[str] | object = _MISSING,
        category: Optional[str] | object = _MISSING,
        thumbnail: Optional[str] | object = _MISSING,
        is_published: bool | object = _MISSING,
        position: int | object = _MISSING,
    ) -> CourseRecord:
        """Update the supplied course fields; omitted fields are left untouched."""

        assignments: List[str] = []
        params: List[Any] = []
        if title is not _MISSING:
            assignments.append("title = ?")
            params.append(_require_title(title, entity="Course"))  # type: ignore[arg-type]
        if description is not _MISSING:
            assignments.append("description = ?")
            params.append(description or "")
        if category is not _MISSING:
            assignments.append("category = ?")
            params.append(category)
        if thumbnail is not _MISSING:
            assignments.append("thumbnail = ?")
            params.append(thumbnail)
        if is_published is not _MISSING:
            assignments.append("is_published = ?")
            params.append(int(bool(is_published)))
        if position is not _MISSING:
            if isinstance(position, bool) or not isinstance(position, int):
                raise ValidationError("position must be an integer")
            assignments.append("position = ?")
            params.append(position)

        with self._track_db_event(
            "update_course", table="courses", course_id=course_id, changes=len(assignments)
        ) as event:
            with self._session() as connection:
                if self._fetch_course(connection, course_id) is None:
                    raise NotFoundError("Course not found.")
                if assignments:
                    assignments.append("updated_at = ?")
                    params.extend([_timestamp(), course_id])
                    self._execute(
                        connection,
                        "UPDATE courses SET " + ", ".join(assignments) + " WHERE id = ?",
                        params,
                        action="courses.update",
                        table="courses",
                    )
                    event["result"] = "updated"
                else:
                    event["result"] = "no_changes"
                record = self._fetch_course(connection, course_id)
        assert record is not None
        return record

    def update_course_thumbnail(
        self, course_id: int, *, thumbnail: Optional[str], thumbnail_key: Optional[str]
    ) -> CourseRecord:
        """Point the course at a freshly uploaded thumbnail blob."""

        with self._track_db_event("update_course_thumbnail", table="courses", course_id=course_id):
            with self._session() as connection:
                if self._fetch_course(connection, course_id) is None:
                    raise NotFoundError("Course not found.")
                self._execute(
                    connection,
                    "UPDATE courses SET thumbnail = ?, thumbnail_key = ?, updated_at = ? WHERE id = ?",
                    (thumbnail, thumbnail_key, _timestamp(), course_id),
                    action="courses.update_thumbnail",
                    table="courses",
                )
                record = self._fetch_course(connection, course_id)
        assert record is not None
        return record

    def reorder_courses(self, course_ids: Sequence[int]) -> int:
        """Assign ``position = index`` to every listed course; returns the rows touched."""

        ids = _validate_identifier_list(course_ids, field="course_ids")
        with self._track_db_event("reorder_courses", table="courses", requested=len(ids)) as event:
            touched = 0
            with self._session() as connection:
                for index, course_id in enumerate(ids):
                    cursor = self._execute(
                        connection,
                        "UPDATE courses SET position = ? WHERE id = ?",
                        (index, course_id),
                        action="courses.reorder",
                        table="courses",
                    )
                    if cursor.rowcount:
                        touched += 1
                    else:
                        LOGGER.debug("Ignoring unknown course id=%s during reorder", course_id)
            event.update({"result": "reordered", "rowcount": touched})
            return touched

    def remove_course(self, course_id: int) -> Tuple[CourseRecord, List[VideoRecord]]:
        """Delete a course's videos and then the course itself.

        Both steps commit separately. The removed course and videos are
        returned so their blobs can be discarded.
        """

        with self._track_db_event("remove_course", table="courses", course_id=course_id) as event:
            with self._session() as connection:
                course = self._fetch_course(connection, course_id)
                if course is None:
                    raise NotFoundError("Course not found.")
                rows = self._execute(
                    connection,
                    f"SELECT {_VIDEO_COLUMNS} FROM videos WHERE course_id = ? {_DISPLAY_ORDER}",
                    (course_id,),
                    action="videos.list_for_delete",
                    table="videos",
                ).fetchall()
                videos = [_video_from_row(row) for row in rows]
                self._execute(
                    connection,
                    "DELETE FROM videos WHERE course_id = ?",
                    (course_id,),
                    action="videos.delete_for_course",
                    table="videos",
                )
            event["videos_removed"] = len(videos)
            LOGGER.debug("Removed %s videos of course id=%s", len(videos), course_id)

            try:
                with self._session() as connection:
                    self._execute(
                        connection,
                        "DELETE FROM courses WHERE id = ?",
                        (course_id,),
                        action="courses.delete",
                        table="courses",
                    )
            except StoreError as exc:
                raise StoreError(
                    f"Removed {len(videos)} videos of course {course_id} but the course "
                    f"record could not be deleted: {exc}"
                ) from exc
            event["result"] = "deleted"
            return course, videos

    # ------------------------------------------------------------------
    # Videos
    # ------------------------------------------------------------------
    def add_video(
        self,
        course_id: int,
        title: str,
        video_key: str,
        *,
        description: str = "",
        video_url: Optional[str] = None,
        video_duration: Optional[str] = None,
        notes_key: Optional[str] = None,
        notes_url: Optional[str] = None,
        notes_title: Optional[str] = None,
        thumbnail: Optional[str] = None,
        is_published: bool = True,
    ) -> VideoRecord:
        title = _require_title(title, entity="Video")
        if not (video_key or "").strip():
            raise ValidationError("Video key is required")
        with self._track_db_event(
            "add_video", table="videos", course_id=course_id, title=title
        ) as event:
            with self._session() as connection:
                if self._fetch_course(connection, course_id) is None:
                    raise NotFoundError("Course not found.")
                position = self._next_position(connection, "videos", course_id=course_id)
                now = _timestamp()
                cursor = self._execute(
                    connection,
                    "INSERT INTO videos(course_id, title, description, position, video_key, video_url,"
                    " video_duration, notes_key, notes_url, notes_title, thumbnail, is_published,"
                    " created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        course_id,
                        title,
                        description or "",
                        position,
                        video_key,
                        video_url,
                        video_duration,
                        notes_key,
                        notes_url,
                        notes_title,
                        thumbnail,
                        int(bool(is_published)),
                        now,
                        now,
                    ),
                    action="videos.insert",
                    table="videos",
                )
                video_id = int(cursor.lastrowid)
                self._store_video_count(connection, course_id)
                event.update({"video_id": video_id, "position": position})
                LOGGER.debug(
                    "Video '%s' inserted with id=%s at position=%s for course_id=%s",
                    title,
                    video_id,
                    position,
                    course_id,
                )
                record = self._fetch_video(connection, video_id)
        assert record is not None
        return record

    def get_video(self, video_id: int, *, privileged: bool = False) -> Optional[VideoRecord]:
        with self._track_db_event("get_video", table="videos", video_id=video_id) as event:
            with self._session() as connection:
                record = self._fetch_video(connection, video_id)
            if record is not None and not privileged and not record.is_published:
                LOGGER.debug("Video id=%s hidden from unprivileged caller", video_id)
                record = None
            event["found"] = record is not None
            return record

    def require_video(self, video_id: int, *, privileged: bool = False) -> VideoRecord:
        record = self.get_video(video_id, privileged=privileged)
        if record is None:
            raise NotFoundError("Video not found.")
        return record

    def list_videos(self, course_id: int, *, privileged: bool = False) -> List[VideoRecord]:
        where = "WHERE course_id = ?" if privileged else "WHERE course_id = ? AND is_published = 1"
        with self._track_db_event(
            "list_videos", table="videos", course_id=course_id, privileged=privileged
        ) as event:
            with self._session() as connection:
                rows = self._execute(
                    connection,
                    f"SELECT {_VIDEO_COLUMNS} FROM videos {where} {_DISPLAY_ORDER}",
                    (course_id,),
                    action="videos.list",
                    table="videos",
                ).fetchall()
            event["rowcount"] = len(rows)
            return [_video_from_row(row) for row in rows]

    def get_adjacent_videos(
        self, video: VideoRecord, *, privileged: bool = False
    ) -> Tuple[Optional[VideoRecord], Optional[VideoRecord]]:
        """Return the videos displayed immediately before and after *video*."""

        siblings = self.list_videos(video.course_id, privileged=privileged)
        ids = [sibling.id for sibling in siblings]
        if video.id not in ids:
            return None, None
        index = ids.index(video.id)
        previous = siblings[index - 1] if index > 0 else None
        following = siblings[index + 1] if index + 1 < len(siblings) else None
        return previous, following

    def count_videos(self, course_id: Optional[int] = None) -> int:
        where = ""
        params: Tuple[Any, ...] = ()
        if course_id is not None:
            where = " WHERE course_id = ?"
            params = (course_id,)
        with self._track_db_event("count_videos", table="videos", course_id=course_id):
            with self._session() as connection:
                row = self._execute(
                    connection,
                    f"SELECT COUNT(*) FROM videos{where}",
                    params,
                    action="videos.count",
                    table="videos",
                ).fetchone()
            return int(row[0]) if row else 0

    def recount_videos(self, course_id: int) -> int:
        """Recompute and persist ``video_count`` for *course_id*."""

        with self._track_db_event("recount_videos", table="courses", course_id=course_id) as event:
            with self._session() as connection:
                if self._fetch_course(connection, course_id) is None:
                    raise NotFoundError("Course not found.")
                total = self._store_video_count(connection, course_id)
            event["video_count"] = total
            return total

    def update_video(
        self,
        video_id: int,
        *,
        title: Optional[str] | object = _MISSING,
        description: Optional[str] | object = _MISSING,
        video_duration: Optional[str] | object = _MISSING,
        notes_title: Optional[str] | object = _MISSING,
        thumbnail: Optional[str] | object = _MISSING,
        is_published: bool | object = _MISSING,
        position: int | object = _MISSING,
    ) -> VideoRecord:
        """Update the supplied video fields; omitted fields are left untouched."""

        assignments: List[str] = []
        params: List[Any] = []
        if title is not _MISSING:
            assignments.append("title = ?")
            params.append(_require_title(title, entity="Video"))  # type: ignore[arg-type]
        if description is not _MISSING:
            assignments.append("description = ?")
            params.append(description or "")
        if video_duration is not _MISSING:
            assignments.append("video_duration = ?")
            params.append(video_duration)
        if notes_title is not _MISSING:
            assignments.append("notes_title = ?")
            params.append(notes_title)
        if thumbnail is not _MISSING:
            assignments.append("thumbnail = ?")
            params.append(thumbnail)
        if is_published is not _MISSING:
            assignments.append("is_published = ?")
            params.append(int(bool(is_published)))
        if position is not _MISSING:
            if isinstance(position, bool) or not isinstance(position, int):
                raise ValidationError("position must be an integer")
            assignments.append("position = ?")
            params.append(position)

        with self._track_db_event(
            "update_video", table="videos", video_id=video_id, changes=len(assignments)
        ) as event:
            with self._session() as connection:
                if self._fetch_video(connection, video_id) is None:
                    raise NotFoundError("Video not found.")
                if assignments:
                    assignments.append("updated_at = ?")
                    params.extend([_timestamp(), video_id])
                    self._execute(
                        connection,
                        "UPDATE videos SET " + ", ".join(assignments) + " WHERE id = ?",
                        params,
                        action="videos.update",
                        table="videos",
                    )
                    event["result"] = "updated"
                else:
                    event["result"] = "no_changes"
                record = self._fetch_video(connection, video_id)
        assert record is not None
        return record

    def update_video_notes(
        self,
        video_id: int,
        *,
        notes_key: Optional[str],
        notes_url: Optional[str],
        notes_title: Optional[str],
    ) -> VideoRecord:
        """Replace (or clear, when all are ``None``) the notes attached to a video."""

        with self._track_db_event(
            "update_video_notes", table="videos", video_id=video_id, attached=notes_key is not None
        ):
            with self._session() as connection:
                if self._fetch_video(connection, video_id) is None:
                    raise NotFoundError("Video not found.")
                self._execute(
                    connection,
                    "UPDATE videos SET notes_key = ?, notes_url = ?, notes_title = ?, updated_at = ?"
                    " WHERE id = ?",
                    (notes_key, notes_url, notes_title, _timestamp(), video_id),
                    action="videos.update_notes",
                    table="videos",
                )
                record = self._fetch_video(connection, video_id)
        assert record is not None
        return record

    def reorder_videos(self, video_ids: Sequence[int], course_id: Optional[int] = None) -> int:
        """Assign ``position = index`` to the listed videos, optionally within one course."""

        ids = _validate_identifier_list(video_ids, field="video_ids")
        statement = "UPDATE videos SET position = ? WHERE id = ?"
        if course_id is not None:
            statement += " AND course_id = ?"
        with self._track_db_event(
            "reorder_videos", table="videos", course_id=course_id, requested=len(ids)
        ) as event:
            touched = 0
            with self._session() as connection:
                for index, video_id in enumerate(ids):
                    params: Tuple[Any, ...] = (index, video_id)
                    if course_id is not None:
                        params += (course_id,)
                    cursor = self._execute(
                        connection, statement, params, action="videos.reorder", table="videos"
                    )
                    if cursor.rowcount:
                        touched += 1
                    else:
                        LOGGER.debug("Ignoring unknown video id=%s during reorder", video_id)
            event.update({"result": "reordered", "rowcount": touched})
            return touched

    def remove_video(self, video_id: int) -> VideoRecord:
        """Delete a video and recount its course; returns the removed record."""

        with self._track_db_event("remove_video", table="videos", video_id=video_id) as event:
            with self._session() as connection:
                video = self._fetch_video(connection, video_id)
                if video is None:
                    raise NotFoundError("Video not found.")
                self._execute(
                    connection,
                    "DELETE FROM videos WHERE id = ?",
                    (video_id,),
                    action="videos.delete",
                    table="videos",
                )
                if self._fetch_course(connection, video.course_id) is not None:
                    self._store_video_count(connection, video.course_id)
            event.update({"result": "deleted", "course_id": video.course_id})
            LOGGER.debug("Video id=%s removed from course id=%s", video_id, video.course_id)
            return video


__all__ = [
    "CatalogRepository",
    "CourseRecord",
    "VideoRecord",
]
