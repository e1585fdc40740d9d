"""
Lectern ORM Models.

One table. Column names follow the legacy catalog schema, so a mirror can
load a ``/clone/db`` export straight into it.
"""
from __future__ import annotations

import datetime as dt
from typing import Optional

from sqlalchemy import Date, DateTime, Float, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from lectern.core.database import Base


class Video(Base):
    __tablename__ = "videos"
    __table_args__ = (
        Index("ix_videos_preacher", "vid_preacher"),
        Index("ix_videos_category", "vid_category"),
        Index("ix_videos_date", "date"),
        Index("ix_videos_vid_url", "vid_url"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    vid_category: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    search_category: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    vid_preacher: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    name: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    vid_title: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    date: Mapped[Optional[dt.date]] = mapped_column(Date, nullable=True)

    # Paths relative to the media origin (absolute URLs are also accepted)
    vid_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    thumb_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    audio_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    subtitles_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)

    language: Mapped[Optional[str]] = mapped_column(String(8), nullable=True)
    runtime_minutes: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    clicks: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    created_at: Mapped[Optional[dt.datetime]] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=True
    )

    @property
    def display_title(self) -> str:
        return self.vid_title or self.name or ""

    @property
    def display_category(self) -> Optional[str]:
        return self.search_category or self.vid_category

    def __repr__(self) -> str:
        return f"<Video {self.id} {self.vid_preacher!r} {self.vid_url!r}>"
