"""Snapshot of the catalog shared by the terminal renderers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List

from ..services.storage import CatalogRepository, CourseRecord, VideoRecord


@dataclass
class VideoOverview:
    record: VideoRecord
    has_notes: bool


@dataclass
class CourseOverview:
    record: CourseRecord
    videos: List[VideoOverview]


@dataclass
class OverviewSnapshot:
    courses: List[CourseOverview]
    course_count: int
    published_course_count: int
    video_count: int
    notes_count: int


def collect_overview(repository: CatalogRepository) -> OverviewSnapshot:
    """Read every course and video, unpublished ones included."""

    courses: List[CourseOverview] = []
    video_count = 0
    notes_count = 0

    for course in repository.list_courses(privileged=True):
        videos: List[VideoOverview] = []
        for video in repository.list_videos(course.id, privileged=True):
            has_notes = bool(video.notes_key)
            notes_count += int(has_notes)
            videos.append(VideoOverview(record=video, has_notes=has_notes))
        video_count += len(videos)
        courses.append(CourseOverview(record=course, videos=videos))

    return OverviewSnapshot(
        courses=courses,
        course_count=len(courses),
        published_course_count=sum(1 for course in courses if course.record.is_published),
        video_count=video_count,
        notes_count=notes_count,
    )


__all__ = [
    "CourseOverview",
    "OverviewSnapshot",
    "VideoOverview",
    "collect_overview",
]
