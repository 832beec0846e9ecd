import logging

from fastapi import HTTPException, status
from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from medcenter.core import config

logger = logging.getLogger(__name__)

DATABASE_URL = config.DATABASE_URL

_connect_args = {'check_same_thread': False} if DATABASE_URL.startswith('sqlite') else {}

engine = create_engine(DATABASE_URL, connect_args=_connect_args)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and database credentials.'


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    # Importing the models registers their tables on Base.metadata.
    from medcenter.models import appointment, schedule, user  # noqa: F401

    Base.metadata.create_all(bind=engine)


def check_database() -> bool:
    try:
        with engine.connect() as connection:
            connection.execute(text('SELECT 1'))
    except SQLAlchemyError:
        logger.exception('Database health check failed.')
        return False
    return True


def database_unavailable(exc: SQLAlchemyError) -> HTTPException:
    logger.error('Database error: %s', exc)
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=DATABASE_UNAVAILABLE_DETAIL,
    )
