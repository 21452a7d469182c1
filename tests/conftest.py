"""Shared fixtures: a real SQL store over a throwaway SQLite file."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Callable, Iterator

import pytest

os.environ.setdefault("SKILLSYNC_STORE", "sql")

from skillsync.clients import SqlSocialStore  # noqa: E402
from skillsync.database import Base, init_db, make_engine, make_session_factory  # noqa: E402

StoreFactory = Callable[..., SqlSocialStore]


@pytest.fixture
def make_sql_store(tmp_path: Path) -> Iterator[StoreFactory]:
    engine = make_engine(f"sqlite+pysqlite:///{tmp_path / 'skillsync-test.db'}")
    init_db(engine)
    factory = make_session_factory(engine)

    def _make(**kwargs: object) -> SqlSocialStore:
        return SqlSocialStore(factory, **kwargs)  # type: ignore[arg-type]

    yield _make
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def sql_store(make_sql_store: StoreFactory) -> SqlSocialStore:
    return make_sql_store()
