from collections.abc import Iterator
from contextlib import contextmanager
import logging

from sqlalchemy import Engine, create_engine
from sqlalchemy.engine import make_url

from influx_transfer.db_models import Base


logger = logging.getLogger(__name__)


def build_database_url(database_url: str, *, user: str | None = None, password: str | None = None) -> str:
    url = make_url(database_url)
    if user is not None:
        url = url.set(username=user)
    if password is not None:
        url = url.set(password=password)
    return url.render_as_string(hide_password=False)


def build_engine(database_url: str, *, create_table: bool = False) -> Engine:
    engine = create_engine(database_url, future=True, pool_pre_ping=True)
    if create_table:
        # Creates the destination table when missing; existing tables are left untouched.
        Base.metadata.create_all(engine)
    return engine


@contextmanager
def engine_scope(database_url: str, *, create_table: bool = False) -> Iterator[Engine]:
    engine = build_engine(database_url, create_table=create_table)
    try:
        yield engine
    finally:
        engine.dispose()
        logger.debug("destination engine disposed")
