from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.exc import SQLAlchemyError, OperationalError
from sqlalchemy import exc as sa_exc
import logging
import os
from contextlib import contextmanager
from typing import Iterator

from railcore.core.config import settings
from railcore.core.errors import IntegrityError, RailCoreError

logger = logging.getLogger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
	# SQLite ignores ON DELETE CASCADE unless asked per connection
	cursor = dbapi_connection.cursor()
	cursor.execute("PRAGMA foreign_keys=ON")
	cursor.close()


def build_engine(url: str, echo: bool = False) -> Engine:
	"""Create an engine with pooling suited to the backend behind ``url``."""
	if url.startswith("sqlite"):
		kwargs = {"connect_args": {"check_same_thread": False}}
		if url in ("sqlite://", "sqlite:///:memory:"):
			# One shared connection, otherwise every session sees an empty database
			kwargs["poolclass"] = StaticPool
		else:
			db_path = url[len("sqlite:///"):]
			directory = os.path.dirname(db_path)
			if directory:
				os.makedirs(directory, exist_ok=True)
		new_engine = create_engine(url, echo=echo, **kwargs)
		event.listen(new_engine, "connect", _enable_sqlite_foreign_keys)
		return new_engine
	return create_engine(
		url,
		echo=echo,
		pool_pre_ping=True,  # Verify connections before using them
		pool_recycle=3600,   # Recycle connections after 1 hour
		pool_size=5,
		max_overflow=10,
	)


engine = build_engine(settings.sync_database_uri, echo=settings.SQLALCHEMY_ECHO)
SessionLocal = sessionmaker(bind=engine, autoflush=False)


def init_schema(bind: Engine = engine) -> None:
	"""Create any missing tables (bootstrap only, not a migration tool)."""
	from railcore.db.models import Base

	Base.metadata.create_all(bind=bind)
	logger.info("Database tables created/verified successfully")


def test_connection(bind: Engine = engine) -> tuple[bool, str]:
	"""Test database connection and return (success, error_message)"""
	try:
		with bind.connect() as conn:
			conn.execute(text("SELECT 1"))
		return True, ""
	except OperationalError as e:
		error_msg = str(e)
		error_lower = error_msg.lower()

		if "name or service not known" in error_lower or "errno -2" in error_lower:
			return False, (
				f"Database hostname cannot be resolved. Check that:\n"
				f"1. DB_HOST is set correctly (current: {settings.DB_HOST})\n"
				f"2. The database server is running and accessible\n"
				f"3. If using DATABASE_URL, verify the hostname in the connection string is correct"
			)
		elif "could not connect" in error_lower or "connection refused" in error_lower:
			return False, f"Database server is not reachable. Check if the database is running and accessible at {settings.DB_HOST}:{settings.DB_PORT}"
		elif "authentication failed" in error_lower or "password" in error_lower:
			return False, "Database authentication failed. Check your DB_USER and DB_PASSWORD credentials."
		elif "does not exist" in error_lower:
			return False, f"Database '{settings.DB_NAME}' does not exist. Please create it first."
		else:
			return False, f"Database connection error: {error_msg}"
	except SQLAlchemyError as e:
		return False, f"Unexpected database error: {str(e)}"


@contextmanager
def session_scope(factory: sessionmaker = SessionLocal) -> Iterator[Session]:
	"""One bounded transaction: commit on success, roll back on any failure."""
	db = factory()
	try:
		yield db
		db.commit()
	except sa_exc.IntegrityError as e:
		db.rollback()
		logger.warning(f"Integrity violation, transaction rolled back: {e.orig}")
		raise IntegrityError(f"Constraint violated: {e.orig}") from e
	except RailCoreError:
		db.rollback()
		raise
	except SQLAlchemyError as e:
		logger.error(f"Database session error: {str(e)}", exc_info=True)
		db.rollback()
		raise
	except Exception as e:
		logger.error(f"Unexpected error in database session: {str(e)}", exc_info=True)
		db.rollback()
		raise
	finally:
		db.close()


def get_db():
	"""Dependency function for FastAPI routes"""
	with session_scope() as db:
		yield db
