from __future__ import annotations

import asyncio
import dataclasses
from typing import Any, Dict

import pytest

pytest.importorskip("fastapi")
pytest.importorskip("httpx")

from fastapi.testclient import TestClient

from coursehub.errors import StoreError
from coursehub.services.blobs import LocalBlobStore
from coursehub.services.storage import CatalogRepository
from coursehub.web import create_app


def _build_client(config, **kwargs: Any) -> tuple[TestClient, CatalogRepository]:
    repository = CatalogRepository(config)
    app = create_app(repository, config=config, **kwargs)
    return TestClient(app), repository


def _admin(config) -> Dict[str, str]:
    return {"Authorization": f"Bearer {config.admin_token}"}


def _upload_video(client: TestClient, config, course_id: int, filename: str = "lesson-one.mp4", **fields: str):
    data = {"course_id": str(course_id), **fields}
    return client.post(
        "/api/videos/upload",
        headers=_admin(config),
        data=data,
        files={"video": (filename, b"fake-video-bytes", "video/mp4")},
    )


def test_health_uses_envelope(temp_config) -> None:
    client, _ = _build_client(temp_config)

    response = client.get("/api/health")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"]["blob_backend"] == "local"


def test_write_routes_require_admin_token(temp_config) -> None:
    client, _ = _build_client(temp_config)

    missing = client.post("/api/courses", json={"title": "Nope"})
    wrong = client.post(
        "/api/courses", json={"title": "Nope"}, headers={"Authorization": "Bearer wrong"}
    )
    verified = client.get("/api/auth/verify", headers=_admin(temp_config))

    assert missing.status_code == 401
    assert missing.json()["success"] is False
    assert wrong.status_code == 403
    assert verified.status_code == 200
    assert verified.json()["data"]["role"] == "admin"


def test_unconfigured_admin_token_rejects_every_write(temp_config) -> None:
    config = dataclasses.replace(temp_config, admin_token=None)
    client, _ = _build_client(config)

    response = client.post(
        "/api/courses", json={"title": "Nope"}, headers={"Authorization": "Bearer anything"}
    )

    assert response.status_code == 403


def test_course_crud_and_visibility(temp_config) -> None:
    client, _ = _build_client(temp_config)
    headers = _admin(temp_config)

    created = client.post(
        "/api/courses",
        json={"title": "Linear Algebra", "description": "Vectors", "category": "Maths"},
        headers=headers,
    )
    assert created.status_code == 201
    course = created.json()["data"]
    assert course["position"] == 0
    assert course["is_published"] is False

    assert client.get("/api/courses").json()["count"] == 0
    assert client.get(f"/api/courses/{course['id']}").status_code == 404
    admin_view = client.get(f"/api/courses/{course['id']}", headers=headers)
    assert admin_view.status_code == 200
    assert admin_view.json()["data"]["videos"] == []

    updated = client.put(
        f"/api/courses/{course['id']}", json={"is_published": True}, headers=headers
    )
    assert updated.status_code == 200
    assert updated.json()["data"]["description"] == "Vectors"

    listed = client.get("/api/courses").json()
    assert listed["count"] == 1
    assert listed["data"][0]["title"] == "Linear Algebra"


def test_invalid_bodies_return_400(temp_config) -> None:
    client, _ = _build_client(temp_config)
    headers = _admin(temp_config)

    empty_title = client.post("/api/courses", json={"title": ""}, headers=headers)
    bad_reorder = client.put("/api/courses/reorder", json={"course_ids": ["abc"]}, headers=headers)
    duplicate = client.put("/api/courses/reorder", json={"course_ids": [1, 1]}, headers=headers)

    assert empty_title.status_code == 400
    assert empty_title.json()["success"] is False
    assert bad_reorder.status_code == 400
    assert duplicate.status_code == 400
    assert "duplicate" in duplicate.json()["message"]


def test_reorder_courses_assigns_positions(temp_config) -> None:
    client, repository = _build_client(temp_config)
    ids = [repository.add_course(title, is_published=True).id for title in ("A", "B", "C")]

    response = client.put(
        "/api/courses/reorder", json={"course_ids": [ids[2], ids[0], ids[1]]}, headers=_admin(temp_config)
    )

    assert response.status_code == 200
    assert response.json()["count"] == 3
    titles = [course["title"] for course in client.get("/api/courses").json()["data"]]
    assert titles == ["C", "A", "B"]


def test_upload_video_appends_and_recounts(temp_config) -> None:
    client, repository = _build_client(temp_config)
    course = repository.add_course("Physics", is_published=True)

    first = _upload_video(client, temp_config, course.id)
    second = _upload_video(client, temp_config, course.id, "waves.mov", title="Waves", description="Part 2")

    assert first.status_code == 201
    assert second.status_code == 201
    video = first.json()["data"]
    assert video["title"] == "lesson-one"
    assert video["position"] == 0
    assert second.json()["data"]["position"] == 1
    assert second.json()["data"]["description"] == "Part 2"
    assert video["video_key"].startswith("videos/")
    assert (temp_config.uploads_root / video["video_key"]).read_bytes() == b"fake-video-bytes"
    assert repository.require_course(course.id).video_count == 2

    served = client.get(video["video_url"])
    assert served.status_code == 200
    assert served.content == b"fake-video-bytes"


def test_upload_video_validates_inputs(temp_config) -> None:
    client, _ = _build_client(temp_config)
    headers = _admin(temp_config)

    no_file = client.post("/api/videos/upload", headers=headers, data={"course_id": "1"})
    no_course = client.post(
        "/api/videos/upload",
        headers=headers,
        files={"video": ("a.mp4", b"x", "video/mp4")},
    )
    unknown_course = _upload_video(client, temp_config, 999)

    assert no_file.status_code == 400
    assert no_course.status_code == 400
    assert unknown_course.status_code == 404
    assert list((temp_config.uploads_root).rglob("*.mp4")) == []


def test_upload_exceeding_limit_returns_413(temp_config) -> None:
    config = dataclasses.replace(temp_config, max_upload_bytes=64)
    client, repository = _build_client(config)
    course = repository.add_course("Tiny")

    response = client.post(
        "/api/videos/upload",
        headers=_admin(config),
        data={"course_id": str(course.id)},
        files={"video": ("big.mp4", b"x" * 4096, "video/mp4")},
    )

    assert response.status_code == 413
    assert response.json()["success"] is False


def test_get_video_includes_course_and_neighbours(temp_config) -> None:
    client, repository = _build_client(temp_config)
    course = repository.add_course("Music", is_published=True)
    first = repository.add_video(course.id, "Scales", "videos/a.mp4")
    repository.add_video(course.id, "Draft", "videos/b.mp4", is_published=False)
    last = repository.add_video(course.id, "Chords", "videos/c.mp4")

    public = client.get(f"/api/videos/{first.id}").json()["data"]
    assert public["course"] == {"id": course.id, "title": "Music"}
    assert public["prev_video"] is None
    assert public["next_video"]["id"] == last.id

    admin = client.get(f"/api/videos/{last.id}", headers=_admin(temp_config)).json()["data"]
    assert admin["prev_video"]["title"] == "Draft"

    listed = client.get(f"/api/videos/course/{course.id}").json()
    assert listed["count"] == 2


def test_public_video_hides_unpublished_course(temp_config) -> None:
    client, repository = _build_client(temp_config)
    course = repository.add_course("Unannounced")
    video = repository.add_video(course.id, "Teaser", "videos/a.mp4")

    public = client.get(f"/api/videos/{video.id}").json()["data"]
    admin = client.get(f"/api/videos/{video.id}", headers=_admin(temp_config)).json()["data"]

    assert public["course"] is None
    assert admin["course"] == {"id": course.id, "title": "Unannounced"}


def test_blob_cleanup_runs_off_the_event_loop(temp_config) -> None:
    class RecordingBlobStore(LocalBlobStore):
        def __init__(self, root) -> None:
            super().__init__(root)
            self.on_loop: list[str] = []
            self.off_loop: list[str] = []

        def delete(self, key: str) -> bool:
            try:
                asyncio.get_running_loop()
            except RuntimeError:
                self.off_loop.append(key)
            else:
                self.on_loop.append(key)
            return super().delete(key)

    store = RecordingBlobStore(temp_config.uploads_root)
    client, repository = _build_client(temp_config, blob_store=store)
    course = repository.add_course("Offloaded")
    repository.add_video(course.id, "A", "videos/a.mp4", notes_key="notes/a.pdf")
    repository.add_video(course.id, "B", "videos/b.mp4")

    response = client.delete(f"/api/courses/{course.id}", headers=_admin(temp_config))

    assert response.status_code == 200
    assert store.on_loop == []
    assert sorted(store.off_loop) == ["notes/a.pdf", "videos/a.mp4", "videos/b.mp4"]


def test_unpublished_video_is_not_found_for_public(temp_config) -> None:
    client, repository = _build_client(temp_config)
    course = repository.add_course("Hidden")
    video = repository.add_video(course.id, "Secret", "videos/a.mp4", is_published=False)

    assert client.get(f"/api/videos/{video.id}").status_code == 404
    assert client.get(f"/api/videos/{video.id}", headers=_admin(temp_config)).status_code == 200


def test_notes_replace_and_remove_discard_old_blobs(temp_config) -> None:
    client, repository = _build_client(temp_config)
    course = repository.add_course("Chemistry")
    video = _upload_video(client, temp_config, course.id).json()["data"]
    headers = _admin(temp_config)

    first = client.post(
        f"/api/videos/{video['id']}/notes",
        headers=headers,
        data={"notes_title": "Week 1"},
        files={"notes": ("week1.pdf", b"%PDF-1", "application/pdf")},
    ).json()["data"]
    first_path = temp_config.uploads_root / first["notes_key"]
    assert first["notes_title"] == "Week 1"
    assert first_path.exists()

    second = client.post(
        f"/api/videos/{video['id']}/notes",
        headers=headers,
        files={"notes": ("week2.pdf", b"%PDF-2", "application/pdf")},
    ).json()["data"]
    second_path = temp_config.uploads_root / second["notes_key"]
    assert second["notes_title"] == "week2.pdf"
    assert not first_path.exists()
    assert second_path.exists()

    removed = client.delete(f"/api/videos/{video['id']}/notes", headers=headers)
    assert removed.status_code == 200
    data = removed.json()["data"]
    assert (data["notes_key"], data["notes_url"], data["notes_title"]) == (None, None, None)
    assert not second_path.exists()

    again = client.delete(f"/api/videos/{video['id']}/notes", headers=headers)
    assert again.status_code == 400


def test_notes_must_be_pdf(temp_config) -> None:
    client, repository = _build_client(temp_config)
    course = repository.add_course("Art")
    video = repository.add_video(course.id, "Colour", "videos/a.mp4")

    response = client.post(
        f"/api/videos/{video.id}/notes",
        headers=_admin(temp_config),
        files={"notes": ("notes.txt", b"plain", "text/plain")},
    )

    assert response.status_code == 400


def test_thumbnail_upload_replaces_previous_image(temp_config) -> None:
    client, repository = _build_client(temp_config)
    course = repository.add_course("Design")
    headers = _admin(temp_config)

    rejected = client.post(
        f"/api/courses/{course.id}/thumbnail",
        headers=headers,
        files={"thumbnail": ("cover.txt", b"text", "text/plain")},
    )
    assert rejected.status_code == 400

    first = client.post(
        f"/api/courses/{course.id}/thumbnail",
        headers=headers,
        files={"thumbnail": ("cover.png", b"\x89PNG-one", "image/png")},
    ).json()["data"]
    second = client.post(
        f"/api/courses/{course.id}/thumbnail",
        headers=headers,
        files={"thumbnail": ("cover.png", b"\x89PNG-two", "image/png")},
    ).json()["data"]

    assert first["thumbnail_key"].startswith("thumbnails/")
    assert second["thumbnail"].endswith(second["thumbnail_key"])
    assert not (temp_config.uploads_root / first["thumbnail_key"]).exists()
    assert (temp_config.uploads_root / second["thumbnail_key"]).read_bytes() == b"\x89PNG-two"


def test_delete_course_cascades_to_videos_and_blobs(temp_config) -> None:
    client, repository = _build_client(temp_config)
    course = repository.add_course("Doomed")
    keys = [
        _upload_video(client, temp_config, course.id, f"part{index}.mp4").json()["data"]["video_key"]
        for index in range(2)
    ]

    response = client.delete(f"/api/courses/{course.id}", headers=_admin(temp_config))

    assert response.status_code == 200
    assert repository.get_course(course.id, privileged=True) is None
    assert repository.count_videos(course.id) == 0
    for key in keys:
        assert not (temp_config.uploads_root / key).exists()
    assert client.delete(f"/api/courses/{course.id}", headers=_admin(temp_config)).status_code == 404


def test_failed_blob_delete_does_not_fail_video_delete(temp_config) -> None:
    class UnreliableBlobStore(LocalBlobStore):
        def delete(self, key: str) -> bool:
            raise StoreError("storage offline")

    store = UnreliableBlobStore(temp_config.uploads_root)
    client, repository = _build_client(temp_config, blob_store=store)
    course = repository.add_course("Resilient")
    video = repository.add_video(course.id, "Clip", "videos/a.mp4", notes_key="notes/a.pdf")

    response = client.delete(f"/api/videos/{video.id}", headers=_admin(temp_config))

    assert response.status_code == 200
    assert repository.get_video(video.id, privileged=True) is None
    assert repository.require_course(course.id, privileged=True).video_count == 0


def test_reorder_videos_and_partial_update(temp_config) -> None:
    client, repository = _build_client(temp_config)
    headers = _admin(temp_config)
    course = repository.add_course("Biology", is_published=True)
    a = repository.add_video(course.id, "A", "videos/a.mp4")
    b = repository.add_video(course.id, "B", "videos/b.mp4")

    reordered = client.put(
        "/api/videos/reorder", json={"video_ids": [b.id, a.id], "course_id": course.id}, headers=headers
    )
    assert reordered.status_code == 200
    titles = [video["title"] for video in client.get(f"/api/videos/course/{course.id}").json()["data"]]
    assert titles == ["B", "A"]

    updated = client.put(f"/api/videos/{a.id}", json={"is_published": False}, headers=headers)
    assert updated.status_code == 200
    assert updated.json()["data"]["title"] == "A"
    assert client.get(f"/api/videos/course/{course.id}").json()["count"] == 1

    missing = client.put("/api/videos/9999", json={"title": "Ghost"}, headers=headers)
    assert missing.status_code == 404


def test_register_existing_blob_as_video(temp_config) -> None:
    client, repository = _build_client(temp_config)
    course = repository.add_course("Imported")

    response = client.post(
        "/api/videos",
        json={"course_id": course.id, "title": "Imported", "video_key": "videos/existing.mp4"},
        headers=_admin(temp_config),
    )

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["video_url"] == "/storage/uploads/videos/existing.mp4"
    assert repository.require_course(course.id, privileged=True).video_count == 1


def test_storage_route_only_serves_uploads(temp_config) -> None:
    client, repository = _build_client(temp_config)
    repository.add_course("Secret Draft Course")
    (temp_config.storage_root / "notes.txt").write_text("private", encoding="utf-8")

    assert client.get("/api/courses").json()["data"] == []
    assert temp_config.database_file.exists()
    assert client.get("/storage/coursehub.db").status_code == 404
    assert client.get("/storage/notes.txt").status_code == 404
    assert client.get("/storage/uploads/%2E%2E/coursehub.db").status_code == 404
    assert client.get("/storage/uploads/missing.txt").status_code == 404
