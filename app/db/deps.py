"""FastAPI database dependency."""

from collections.abc import Iterator

from sqlalchemy.orm import Session

from app.db import session as db_session


def get_db() -> Iterator[Session]:
    # Resolve SessionLocal at call time so tests can swap the factory
    db = db_session.SessionLocal()
    try:
        yield db
    finally:
        db.close()
