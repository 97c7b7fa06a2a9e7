"""
データストア

Scheduler / Worker から使う狭い読み書きAPI。
SQLAlchemy の例外は DatastoreError に包んで呼び出し側へ返す（どの操作で失敗したかを持たせる）。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, TypeVar

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from novelday.db import session_scope
from novelday.enums import ChapterType, PeriodKind
from novelday.models import Entry, Profile
from novelday.records import ChapterRow, Persona, SourceEntry


logger = logging.getLogger(__name__)

T = TypeVar("T")


class DatastoreError(RuntimeError):
    """データストア操作の失敗。"""

    def __init__(self, operation: str, cause: BaseException):
        super().__init__(f"{operation} failed: {cause}")
        self.operation = operation
        self.cause = cause


@dataclass(frozen=True)
class ProfileRecord:
    """profiles の1行（セッション外で使えるようにコピーしたもの）。"""

    id: str
    name: Optional[str]
    first_person: Optional[str]
    occupation: Optional[str]
    free_context: Optional[str]
    is_premium: bool
    auto_weekly_novel: bool
    auto_monthly_novel: bool

    def to_persona(self) -> Persona:
        return Persona.from_values(
            first_person=self.first_person,
            display_name=self.name,
            occupation=self.occupation,
            free_context=self.free_context,
        )


def _auto_flag_column(kind: PeriodKind):
    return Profile.auto_weekly_novel if kind is PeriodKind.WEEK else Profile.auto_monthly_novel


class Datastore:
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def _run(self, operation: str, fn: Callable[[Session], T]) -> T:
        try:
            with session_scope(self.session_factory) as session:
                return fn(session)
        except SQLAlchemyError as exc:
            raise DatastoreError(operation, exc) from exc

    # --- 読み取り ---

    def list_eligible_user_ids(self, kind: PeriodKind) -> list[str]:
        """premium かつ期間の自動生成フラグが立っているユーザー。"""

        def _query(session: Session) -> list[str]:
            stmt = (
                select(Profile.id)
                .where(Profile.is_premium.is_(True), _auto_flag_column(kind).is_(True))
                .order_by(Profile.id.asc())
            )
            return [str(uid) for uid in session.scalars(stmt).all()]

        return self._run("list eligible users", _query)

    def fetch_daily_entries(self, user_id: str, start_key: str, end_key: str) -> list[SourceEntry]:
        """date_key が [start_key, end_key) の daily を date_key, created_at 順で返す。"""

        def _query(session: Session) -> list[SourceEntry]:
            stmt = (
                select(Entry)
                .where(
                    Entry.user_id == user_id,
                    Entry.chapter_type == ChapterType.DAILY.value,
                    Entry.date_key >= start_key,
                    Entry.date_key < end_key,
                )
                .order_by(Entry.date_key.asc(), Entry.created_at.asc(), Entry.id.asc())
            )
            return [
                SourceEntry(
                    created_at=row.created_at,
                    memo=row.memo,
                    body=row.body,
                    style=row.style,
                    date_key=row.date_key,
                )
                for row in session.scalars(stmt).all()
            ]

        return self._run("fetch daily entries", _query)

    def chapter_exists(self, user_id: str, chapter_type: ChapterType, period_key: str) -> bool:
        def _query(session: Session) -> bool:
            stmt = (
                select(Entry.id)
                .where(
                    Entry.user_id == user_id,
                    Entry.chapter_type == chapter_type.value,
                    Entry.period_key == period_key,
                )
                .limit(1)
            )
            return session.scalars(stmt).first() is not None

        return self._run(f"{chapter_type.value} exists check", _query)

    def load_profile(self, user_id: str) -> Optional[ProfileRecord]:
        def _query(session: Session) -> Optional[ProfileRecord]:
            row = session.get(Profile, user_id)
            if row is None:
                return None
            return ProfileRecord(
                id=row.id,
                name=row.name,
                first_person=row.first_person,
                occupation=row.occupation,
                free_context=row.free_context,
                is_premium=bool(row.is_premium),
                auto_weekly_novel=bool(row.auto_weekly_novel),
                auto_monthly_novel=bool(row.auto_monthly_novel),
            )

        return self._run("load profile", _query)

    def count_chapters(self, user_id: str, chapter_type: ChapterType) -> int:
        def _query(session: Session) -> int:
            stmt = select(func.count(Entry.id)).where(
                Entry.user_id == user_id,
                Entry.chapter_type == chapter_type.value,
            )
            return int(session.scalar(stmt) or 0)

        return self._run(f"{chapter_type.value} list", _query)

    def list_chapters(self, user_id: str, chapter_type: ChapterType) -> list[ChapterRow]:
        """保存済みのまとめ章を period_key 順で返す。"""

        def _query(session: Session) -> list[ChapterRow]:
            stmt = (
                select(Entry)
                .where(Entry.user_id == user_id, Entry.chapter_type == chapter_type.value)
                .order_by(Entry.period_key.asc(), Entry.id.asc())
            )
            return [
                ChapterRow(
                    user_id=row.user_id,
                    chapter_type=ChapterType(row.chapter_type),
                    period_key=row.period_key or "",
                    title=row.title or "",
                    body=row.body or "",
                    style=row.style or "",
                    memo=row.memo,
                    volume=row.volume,
                    created_at=row.created_at,
                )
                for row in session.scalars(stmt).all()
            ]

        return self._run(f"{chapter_type.value} list", _query)

    # --- 書き込み ---

    def insert_chapter(self, row: ChapterRow) -> bool:
        """
        まとめ章を1行追加する。

        一意制約 (user_id, chapter_type, period_key) に当たった場合は False（重複扱い）。
        """
        session = self.session_factory()
        try:
            session.add(
                Entry(
                    user_id=row.user_id,
                    chapter_type=row.chapter_type.value,
                    period_key=row.period_key,
                    memo=row.memo,
                    title=row.title,
                    body=row.body,
                    style=row.style,
                    volume=row.volume,
                    created_at=row.created_at or datetime.utcnow(),
                )
            )
            session.commit()
            return True
        except IntegrityError:
            session.rollback()
            logger.info(
                "chapter already inserted by another delivery",
                extra={"user_id": row.user_id, "chapter_type": row.chapter_type.value, "period_key": row.period_key},
            )
            return False
        except SQLAlchemyError as exc:
            session.rollback()
            raise DatastoreError(f"insert {row.chapter_type.value}", exc) from exc
        finally:
            session.close()

    def add_profile(
        self,
        user_id: str,
        *,
        name: Optional[str] = None,
        first_person: Optional[str] = None,
        occupation: Optional[str] = None,
        free_context: Optional[str] = None,
        is_premium: bool = False,
        auto_weekly_novel: bool = False,
        auto_monthly_novel: bool = False,
    ) -> None:
        def _insert(session: Session) -> None:
            session.add(
                Profile(
                    id=user_id,
                    name=name,
                    first_person=first_person,
                    occupation=occupation,
                    free_context=free_context,
                    is_premium=is_premium,
                    auto_weekly_novel=auto_weekly_novel,
                    auto_monthly_novel=auto_monthly_novel,
                )
            )

        self._run("add profile", _insert)

    def add_daily_entry(
        self,
        user_id: str,
        date_key: str,
        *,
        memo: Optional[str] = None,
        body: Optional[str] = None,
        style: Optional[str] = None,
        title: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> None:
        def _insert(session: Session) -> None:
            session.add(
                Entry(
                    user_id=user_id,
                    chapter_type=ChapterType.DAILY.value,
                    date_key=date_key,
                    memo=memo,
                    title=title,
                    body=body,
                    style=style,
                    created_at=created_at or datetime.utcnow(),
                )
            )

        self._run("add daily entry", _insert)
