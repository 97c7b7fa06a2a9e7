"""ORM モデル定義。"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from novelday.db import Base


_USER_ID_LEN = 64
_DATE_KEY_LEN = 10


class Profile(Base):
    """ユーザープロフィール（語り手設定と自動生成フラグ）。"""

    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(_USER_ID_LEN), primary_key=True)
    name: Mapped[Optional[str]] = mapped_column(Text)
    first_person: Mapped[Optional[str]] = mapped_column(Text)
    occupation: Mapped[Optional[str]] = mapped_column(Text)
    free_context: Mapped[Optional[str]] = mapped_column(Text)
    is_premium: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    auto_weekly_novel: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    auto_monthly_novel: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class Entry(Base):
    """
    日記（daily）と週/月まとめ章（weekly/monthly）を同じテーブルに置く。

    daily は period_key を持たない。まとめ章は (user_id, chapter_type, period_key) で一意。
    """

    __tablename__ = "entries"
    __table_args__ = (
        UniqueConstraint("user_id", "chapter_type", "period_key", name="uq_entries_user_type_period"),
        Index("idx_entries_user_type_date", "user_id", "chapter_type", "date_key"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(_USER_ID_LEN), nullable=False)
    chapter_type: Mapped[str] = mapped_column(String(16), nullable=False)
    date_key: Mapped[Optional[str]] = mapped_column(String(_DATE_KEY_LEN))
    period_key: Mapped[Optional[str]] = mapped_column(String(_DATE_KEY_LEN))
    memo: Mapped[Optional[str]] = mapped_column(Text)
    title: Mapped[Optional[str]] = mapped_column(Text)
    body: Mapped[Optional[str]] = mapped_column(Text)
    style: Mapped[Optional[str]] = mapped_column(String(32))
    volume: Mapped[Optional[int]] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


class Task(Base):
    """配送待ちのHTTPタスク（Dispatcherが実行）。"""

    __tablename__ = "tasks"
    __table_args__ = (Index("idx_tasks_status_run_after", "status", "run_after"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    queue_name: Mapped[str] = mapped_column(Text, nullable=False)
    http_method: Mapped[str] = mapped_column(String(8), nullable=False, default="POST")
    url: Mapped[str] = mapped_column(Text, nullable=False)
    headers_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    body_b64: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    run_after: Mapped[int] = mapped_column(Integer, nullable=False)
    tries: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[int] = mapped_column(Integer, nullable=False)
