"""
SQLAlchemy 2.0 ORM models for scorewire.
Only the tables the pipeline reads or writes: teams, games, user favorites
and news articles. User accounts and profiles live elsewhere.
"""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class TeamORM(Base):
    __tablename__ = "teams"

    id: Mapped[str] = mapped_column(String(40), primary_key=True)
    league: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    code: Mapped[str] = mapped_column(String(10), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)


class UserTeamORM(Base):
    __tablename__ = "user_teams"
    __table_args__ = (UniqueConstraint("user_id", "team_id"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    team_id: Mapped[str] = mapped_column(String(40), ForeignKey("teams.id"), nullable=False)


class GameORM(Base):
    __tablename__ = "games"

    id: Mapped[str] = mapped_column(String(120), primary_key=True)
    league: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    home_team_id: Mapped[str] = mapped_column(String(40), nullable=False)
    away_team_id: Mapped[str] = mapped_column(String(40), nullable=False)
    home_pts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    away_pts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    period: Mapped[Optional[str]] = mapped_column(String(10))
    time_remaining: Mapped[Optional[str]] = mapped_column(String(20))
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    source: Mapped[str] = mapped_column(String(40), nullable=False)
    cached_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class NewsArticleORM(Base):
    __tablename__ = "news_articles"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    summary: Mapped[Optional[str]] = mapped_column(Text)
    category: Mapped[str] = mapped_column(String(20), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    team_id: Mapped[Optional[str]] = mapped_column(String(40), index=True)
    source: Mapped[Optional[str]] = mapped_column(String(100))
    min_hash: Mapped[Optional[str]] = mapped_column(Text)
    published_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    fetched_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
