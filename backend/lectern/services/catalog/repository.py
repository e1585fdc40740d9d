"""
Lectern Video Repository — persistence behind one interface.

  - SqlVideoRepository talks to the database through the async engine pool,
    one session per operation.
  - FixtureVideoRepository serves rows held in memory (sample data or a JSON
    file), so the API runs unchanged without a database.

``create_repository`` picks one from settings.
"""
from __future__ import annotations

import asyncio
import datetime as dt
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from lectern.core.config import Settings
from lectern.core.database import build_engine, build_session_factory, init_db
from lectern.core.errors import QueryTimeoutError
from lectern.models.models import Video
from lectern.services.catalog.query_builder import VideoQuery

logger = logging.getLogger(__name__)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class VideoRepository(ABC):
    """Read side of the catalog plus the view counter."""

    @abstractmethod
    async def list_videos(self, query: VideoQuery) -> List[Video]:
        ...

    @abstractmethod
    async def count_videos(self, query: VideoQuery) -> int:
        ...

    @abstractmethod
    async def get_video(self, video_id: int) -> Optional[Video]:
        ...

    @abstractmethod
    async def increment_views(self, video_id: int) -> None:
        ...

    @abstractmethod
    async def list_recommendations(self, video: Video, limit: int) -> List[Video]:
        ...

    @abstractmethod
    async def distinct_languages(self) -> List[str]:
        ...

    @abstractmethod
    async def search_catalog(self, term: str, limit: int, offset: int) -> List[Video]:
        ...

    @abstractmethod
    async def find_by_media_paths(self, paths: Sequence[str]) -> List[Tuple[int, str]]:
        """``(id, vid_url)`` rows whose media path equals or ends with one of ``paths``."""

    @abstractmethod
    async def list_categories(self, q: Optional[str] = None) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    async def list_preachers(self) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    async def preacher_stats(self, name: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    async def export_videos(self, since: Optional[dt.datetime] = None) -> List[Video]:
        ...

    @abstractmethod
    async def catalog_status(self) -> Dict[str, Any]:
        ...

    async def startup(self) -> None:
        pass

    async def close(self) -> None:
        pass


# ═══════════════════════════════════════════════════════════════════════
# SQL
# ═══════════════════════════════════════════════════════════════════════

def _order_by(order: str):
    column = Video.clicks if order == "clicks" else Video.date
    # Undated rows sort last on every backend
    return (column.desc().nulls_last(), Video.id.desc())


class SqlVideoRepository(VideoRepository):
    def __init__(self, session_factory: async_sessionmaker, query_timeout: float = 5.0, engine=None):
        self._session_factory = session_factory
        self._query_timeout = query_timeout
        self._engine = engine

    async def _bounded(self, coro):
        try:
            return await asyncio.wait_for(coro, timeout=self._query_timeout)
        except asyncio.TimeoutError:
            logger.warning("Catalog query exceeded %.1fs", self._query_timeout)
            raise QueryTimeoutError()

    async def list_videos(self, query: VideoQuery) -> List[Video]:
        stmt = (
            select(Video)
            .where(*query.where_clauses())
            .order_by(*_order_by(query.order))
            .offset(query.offset)
            .limit(query.limit)
        )

        async def run():
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return list(result.scalars().all())

        return await self._bounded(run())

    async def count_videos(self, query: VideoQuery) -> int:
        stmt = select(func.count(Video.id)).where(*query.where_clauses())

        async def run():
            async with self._session_factory() as session:
                return await session.scalar(stmt) or 0

        return await self._bounded(run())

    async def get_video(self, video_id: int) -> Optional[Video]:
        async with self._session_factory() as session:
            return await session.get(Video, video_id)

    async def increment_views(self, video_id: int) -> None:
        async with self._session_factory() as session:
            await session.execute(
                update(Video).where(Video.id == video_id).values(clicks=Video.clicks + 1)
            )
            await session.commit()

    async def list_recommendations(self, video: Video, limit: int) -> List[Video]:
        stmt = (
            select(Video)
            .where(Video.vid_preacher == video.vid_preacher, Video.id != video.id)
            .order_by(Video.date.desc().nulls_last(), Video.id.desc())
            .limit(limit)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def distinct_languages(self) -> List[str]:
        code = func.lower(func.trim(Video.language))
        stmt = (
            select(code)
            .where(Video.language.isnot(None), func.trim(Video.language) != "")
            .distinct()
            .order_by(code)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [row[0] for row in result]

    async def search_catalog(self, term: str, limit: int, offset: int) -> List[Video]:
        pattern = f"%{_escape_like(term)}%"
        stmt = (
            select(Video)
            .where(or_(
                Video.vid_title.ilike(pattern, escape="\\"),
                Video.vid_preacher.ilike(pattern, escape="\\"),
                Video.name.ilike(pattern, escape="\\"),
            ))
            .order_by(Video.date.desc().nulls_last(), Video.id.desc())
            .offset(offset)
            .limit(limit)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def find_by_media_paths(self, paths: Sequence[str]) -> List[Tuple[int, str]]:
        if not paths:
            return []
        exact = set()
        conditions = []
        for path in paths:
            exact.update((path, f"/{path}"))
            conditions.append(Video.vid_url.like(f"%/{_escape_like(path)}", escape="\\"))
        stmt = select(Video.id, Video.vid_url).where(
            or_(Video.vid_url.in_(sorted(exact)), *conditions)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [(row.id, row.vid_url) for row in result]

    async def list_categories(self, q: Optional[str] = None) -> List[Dict[str, Any]]:
        name = func.coalesce(func.nullif(func.max(Video.search_category), ""), Video.vid_category)
        grouped = (
            select(
                Video.vid_category.label("slug"),
                name.label("name"),
                func.count(Video.id).label("videoCount"),
            )
            .where(Video.vid_category.isnot(None))
            .group_by(Video.vid_category)
            .subquery()
        )
        stmt = select(grouped)
        if q:
            stmt = stmt.where(grouped.c.name.ilike(f"%{_escape_like(q)}%", escape="\\"))
        stmt = stmt.order_by(grouped.c.videoCount.desc(), grouped.c.slug)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [dict(row._mapping) for row in result]

    async def list_preachers(self) -> List[Dict[str, Any]]:
        stmt = (
            select(
                Video.vid_preacher.label("name"),
                func.count(Video.id).label("videoCount"),
                func.max(Video.date).label("latestVideo"),
            )
            .where(Video.vid_preacher.isnot(None))
            .group_by(Video.vid_preacher)
            .order_by(Video.vid_preacher)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [dict(row._mapping) for row in result]

    async def preacher_stats(self, name: str) -> Optional[Dict[str, Any]]:
        stmt = (
            select(
                Video.vid_preacher.label("name"),
                func.count(Video.id).label("videoCount"),
                func.max(Video.date).label("latestVideo"),
                func.min(Video.date).label("firstVideo"),
                func.coalesce(func.sum(Video.clicks), 0).label("totalViews"),
            )
            .where(Video.vid_preacher == name)
            .group_by(Video.vid_preacher)
        )
        async with self._session_factory() as session:
            row = (await session.execute(stmt)).first()
            return dict(row._mapping) if row else None

    async def export_videos(self, since: Optional[dt.datetime] = None) -> List[Video]:
        stmt = select(Video)
        if since is not None:
            stmt = stmt.where(Video.created_at >= since)
        stmt = stmt.order_by(Video.id)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def catalog_status(self) -> Dict[str, Any]:
        async with self._session_factory() as session:
            total = await session.scalar(select(func.count(Video.id))) or 0
            latest = await session.scalar(select(func.max(Video.date)))
        return {"totalVideos": total, "latestVideo": latest}

    async def startup(self) -> None:
        if self._engine is not None:
            await init_db(self._engine)

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()


# ═══════════════════════════════════════════════════════════════════════
# In-memory fixture
# ═══════════════════════════════════════════════════════════════════════

SAMPLE_ROWS: List[Dict[str, Any]] = [
    {
        "id": 1, "vid_category": "anderson", "search_category": "Hard Preaching",
        "vid_preacher": "Anderson", "name": "bible-way-to-heaven",
        "vid_title": "The Bible Way to Heaven", "date": "2024-01-15",
        "vid_url": "anderson/bible-way-to-heaven.mp4", "language": "en",
        "runtime_minutes": 45, "clicks": 15420, "created_at": "2024-01-15T00:00:00+00:00",
    },
    {
        "id": 2, "vid_category": "anderson", "search_category": "Doctrine",
        "vid_preacher": "Anderson", "name": "kjv-bible",
        "vid_title": "Why I Use the King James Bible", "date": "2024-02-10",
        "vid_url": "anderson/kjv-bible.mp4", "language": "en",
        "runtime_minutes": 38, "clicks": 8932, "created_at": "2024-02-10T00:00:00+00:00",
    },
    {
        "id": 3, "vid_category": "mejia", "search_category": "Salvation",
        "vid_preacher": "Mejia", "name": "faith-plus-nothing",
        "vid_title": "Faith Plus Nothing", "date": "2024-01-20",
        "vid_url": "mejia/faith-plus-nothing.mp4", "language": "es",
        "runtime_minutes": 12.5, "clicks": 12543, "created_at": "2024-01-20T00:00:00+00:00",
    },
    {
        "id": 4, "vid_category": "shelley", "search_category": None,
        "vid_preacher": "Shelley", "name": "soulwinning-basics",
        "vid_title": None, "date": "2024-03-05",
        "vid_url": "shelley/soulwinning-basics.mp4", "language": "en",
        "runtime_minutes": 18, "clicks": 2210, "created_at": "2024-03-05T00:00:00+00:00",
        "thumb_url": "shelley/covers/soulwinning.png",
    },
]


def _parse_date(value):
    if value is None or isinstance(value, dt.date):
        return value
    return dt.date.fromisoformat(str(value)[:10])


def _parse_datetime(value):
    if value is None or isinstance(value, dt.datetime):
        return value
    parsed = dt.datetime.fromisoformat(str(value))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=dt.timezone.utc)


def video_from_dict(data: Dict[str, Any]) -> Video:
    columns = {c.key for c in Video.__table__.columns}
    values = {k: v for k, v in data.items() if k in columns}
    values["date"] = _parse_date(values.get("date"))
    values["created_at"] = _parse_datetime(values.get("created_at"))
    values["clicks"] = int(values.get("clicks") or 0)
    return Video(**values)


def _sort_key(order: str):
    if order == "clicks":
        return lambda v: (v.clicks or 0, v.id)
    return lambda v: (v.date or dt.date.min, v.id)


class FixtureVideoRepository(VideoRepository):
    def __init__(self, rows: Iterable[Any] = ()):
        self._rows: Dict[int, Video] = {}
        for row in rows:
            video = row if isinstance(row, Video) else video_from_dict(row)
            self._rows[video.id] = video

    @classmethod
    def from_file(cls, path: str) -> "FixtureVideoRepository":
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        if isinstance(data, dict):
            data = data.get("videos", [])
        return cls(data)

    def _sorted(self, rows: Iterable[Video], order: str = "date") -> List[Video]:
        return sorted(rows, key=_sort_key(order), reverse=True)

    async def list_videos(self, query: VideoQuery) -> List[Video]:
        rows = self._sorted((v for v in self._rows.values() if query.matches(v)), query.order)
        return rows[query.offset:query.offset + query.limit]

    async def count_videos(self, query: VideoQuery) -> int:
        return sum(1 for v in self._rows.values() if query.matches(v))

    async def get_video(self, video_id: int) -> Optional[Video]:
        return self._rows.get(video_id)

    async def increment_views(self, video_id: int) -> None:
        video = self._rows.get(video_id)
        if video is not None:
            video.clicks = (video.clicks or 0) + 1

    async def list_recommendations(self, video: Video, limit: int) -> List[Video]:
        rows = (v for v in self._rows.values()
                if v.vid_preacher == video.vid_preacher and v.id != video.id)
        return self._sorted(rows)[:limit]

    async def distinct_languages(self) -> List[str]:
        codes = {(v.language or "").strip().lower() for v in self._rows.values()}
        return sorted(code for code in codes if code)

    async def search_catalog(self, term: str, limit: int, offset: int) -> List[Video]:
        needle = term.casefold()
        rows = (
            v for v in self._rows.values()
            if any(needle in (field or "").casefold() for field in (v.vid_title, v.vid_preacher, v.name))
        )
        return self._sorted(rows)[offset:offset + limit]

    async def find_by_media_paths(self, paths: Sequence[str]) -> List[Tuple[int, str]]:
        matches = []
        for video in self._rows.values():
            stored = video.vid_url or ""
            for path in paths:
                if stored in (path, f"/{path}") or stored.endswith(f"/{path}"):
                    matches.append((video.id, stored))
                    break
        return matches

    async def list_categories(self, q: Optional[str] = None) -> List[Dict[str, Any]]:
        groups: Dict[str, Dict[str, Any]] = {}
        for video in self._rows.values():
            if video.vid_category is None:
                continue
            group = groups.setdefault(video.vid_category, {"display": [], "count": 0})
            group["count"] += 1
            if video.search_category:
                group["display"].append(video.search_category)
        categories = [
            {"slug": slug, "name": max(g["display"]) if g["display"] else slug, "videoCount": g["count"]}
            for slug, g in groups.items()
        ]
        if q:
            categories = [c for c in categories if q.casefold() in c["name"].casefold()]
        return sorted(categories, key=lambda c: (-c["videoCount"], c["slug"]))

    def _preacher_rows(self, name: str) -> List[Video]:
        return [v for v in self._rows.values() if v.vid_preacher == name]

    async def list_preachers(self) -> List[Dict[str, Any]]:
        names = sorted({v.vid_preacher for v in self._rows.values() if v.vid_preacher is not None})
        result = []
        for name in names:
            rows = self._preacher_rows(name)
            dates = [v.date for v in rows if v.date]
            result.append({
                "name": name,
                "videoCount": len(rows),
                "latestVideo": max(dates) if dates else None,
            })
        return result

    async def preacher_stats(self, name: str) -> Optional[Dict[str, Any]]:
        rows = self._preacher_rows(name)
        if not rows:
            return None
        dates = [v.date for v in rows if v.date]
        return {
            "name": name,
            "videoCount": len(rows),
            "latestVideo": max(dates) if dates else None,
            "firstVideo": min(dates) if dates else None,
            "totalViews": sum(v.clicks or 0 for v in rows),
        }

    async def export_videos(self, since: Optional[dt.datetime] = None) -> List[Video]:
        rows = sorted(self._rows.values(), key=lambda v: v.id)
        if since is not None:
            since = since if since.tzinfo else since.replace(tzinfo=dt.timezone.utc)
            rows = [v for v in rows if v.created_at is not None and v.created_at >= since]
        return rows

    async def catalog_status(self) -> Dict[str, Any]:
        dates = [v.date for v in self._rows.values() if v.date]
        return {"totalVideos": len(self._rows), "latestVideo": max(dates) if dates else None}


def create_repository(settings: Settings) -> VideoRepository:
    if settings.store.lower() == "fixture":
        if settings.fixture_path:
            repository = FixtureVideoRepository.from_file(settings.fixture_path)
        else:
            repository = FixtureVideoRepository(SAMPLE_ROWS)
        logger.info("Using fixture video store")
        return repository

    engine = build_engine(settings)
    return SqlVideoRepository(
        build_session_factory(engine),
        query_timeout=settings.query_timeout_seconds,
        engine=engine,
    )
