import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine, Session

from . import models  # noqa: F401  (registers tables on SQLModel.metadata)
from .errors import StoreFailure

log = logging.getLogger("relay.store")

class Store:
    """Engine plus transaction scope shared by the relay components."""

    def __init__(self, database_url: str) -> None:
        self.database_url = database_url
        kwargs: dict = {"pool_pre_ping": True}
        if database_url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if database_url in ("sqlite://", "sqlite:///:memory:"):
                kwargs["poolclass"] = StaticPool
        self.engine = create_engine(database_url, **kwargs)

    @property
    def supports_row_locks(self) -> bool:
        # SELECT ... FOR UPDATE SKIP LOCKED
        return self.engine.dialect.name in ("postgresql", "mysql", "mariadb", "oracle")

    def init_schema(self) -> None:
        try:
            SQLModel.metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            raise StoreFailure(f"schema init failed: {e}") from e

    def dispose(self) -> None:
        self.engine.dispose()

    @contextmanager
    def session(self) -> Iterator[Session]:
        # 👇 prevent attribute expiration so simple reads after commit are safe
        session = Session(self.engine, expire_on_commit=False)
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            log.warning("store transaction aborted: %s", e)
            raise StoreFailure(str(e)) from e
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()
