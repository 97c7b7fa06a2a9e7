"""DB 接続とセッション管理。"""

from __future__ import annotations

import contextlib
import logging
from pathlib import Path
from typing import Iterator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

# profiles / entries / tasks 共通の Base
Base = declarative_base()


def _is_sqlite(db_url: str) -> bool:
    return db_url.startswith("sqlite")


def _is_sqlite_memory(db_url: str) -> bool:
    return _is_sqlite(db_url) and (db_url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in db_url)


def create_db_engine(db_url: str) -> Engine:
    """エンジンを作成する（SQLiteなら接続ごとにPRAGMAを適用）。"""
    kwargs: dict = {"future": True}
    if _is_sqlite(db_url):
        kwargs["connect_args"] = {"check_same_thread": False}
        # インメモリDBは接続ごとに別DBになるため、1接続を共有する
        if _is_sqlite_memory(db_url):
            kwargs["poolclass"] = StaticPool
    engine = create_engine(db_url, **kwargs)

    if _is_sqlite(db_url):

        @event.listens_for(engine, "connect")
        def apply_sqlite_pragmas(dbapi_conn, connection_record):
            try:
                dbapi_conn.execute("PRAGMA foreign_keys=ON")
                dbapi_conn.execute("PRAGMA synchronous=NORMAL")
                dbapi_conn.execute("PRAGMA temp_store=MEMORY")
            except Exception as exc:  # noqa: BLE001
                logger.warning("SQLite PRAGMAの適用に失敗しました", exc_info=exc)

    return engine


def _apply_wal(engine: Engine) -> None:
    with engine.connect() as conn:
        conn.execute(text("PRAGMA journal_mode=WAL"))
        conn.commit()


def init_db(db_url: str) -> sessionmaker:
    """テーブルを作成し、sessionmakerを返す。"""
    engine = create_db_engine(db_url)
    if _is_sqlite(db_url) and not _is_sqlite_memory(db_url):
        if engine.url.database:
            Path(engine.url.database).parent.mkdir(parents=True, exist_ok=True)
        _apply_wal(engine)

    # テーブル定義を Base に登録する
    import novelday.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info(f"DB初期化完了: {engine.url.render_as_string(hide_password=True)}")
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@contextlib.contextmanager
def session_scope(session_factory: sessionmaker) -> Iterator[Session]:
    """commit/rollback/close をまとめたセッションスコープ。"""
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
