from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine
from typing import Optional
import logging

from .core.config import settings
from .core.errors import (
	ConcurrencyConflict, IntegrityError, NotFoundError, RailCoreError, ValidationError,
)
from .db.session import engine as default_engine, init_schema, test_connection

# Configure logging
logging.basicConfig(
	level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
	format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def _error_body(exc: RailCoreError, error: str) -> dict:
	body = {"error": error, "detail": exc.message}
	if isinstance(exc, ValidationError) and exc.errors:
		body["errors"] = exc.errors
	return body


def register_exception_handlers(app: FastAPI) -> None:
	"""Map store errors onto HTTP outcomes; anything unexpected is an opaque 500."""

	@app.exception_handler(ValidationError)
	async def validation_error_handler(request: Request, exc: ValidationError):
		return JSONResponse(status_code=400, content=_error_body(exc, "validation_error"))

	@app.exception_handler(NotFoundError)
	async def not_found_handler(request: Request, exc: NotFoundError):
		return JSONResponse(status_code=404, content=_error_body(exc, "not_found"))

	@app.exception_handler(ConcurrencyConflict)
	async def conflict_handler(request: Request, exc: ConcurrencyConflict):
		return JSONResponse(status_code=409, content=_error_body(exc, "concurrency_conflict"))

	@app.exception_handler(IntegrityError)
	async def integrity_error_handler(request: Request, exc: IntegrityError):
		return JSONResponse(status_code=409, content=_error_body(exc, "integrity_error"))

	@app.exception_handler(Exception)
	async def unhandled_error_handler(request: Request, exc: Exception):
		# Never leak internals to the client
		logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
		return JSONResponse(status_code=500, content={"error": "internal_error", "detail": "Internal server error"})


def create_app(bind: Optional[Engine] = None) -> FastAPI:
	db_engine = bind if bind is not None else default_engine

	app = FastAPI(
		title=settings.APP_NAME,
		description="Railway network aggregate store",
		version="0.1.0",
	)
	register_exception_handlers(app)

	# Ensure database tables exist on startup
	@app.on_event("startup")
	def on_startup() -> None:
		logger.info(f"Database configuration: DB_TYPE={settings.DB_TYPE}, ENV={settings.ENV}")
		logger.info(f"Testing database connection to {settings.DB_TYPE} database...")
		connection_ok, error_msg = test_connection(db_engine)
		if not connection_ok:
			logger.error(f"Database connection test failed: {error_msg}")
			logger.error(f"Database URI (masked): {settings.masked_database_uri}")
			return
		logger.info("Database connection test successful")
		init_schema(db_engine)

	@app.get("/health")
	def health() -> dict:
		connection_ok, error_msg = test_connection(db_engine)
		return {
			"status": "ok" if connection_ok else "degraded",
			"database": "connected" if connection_ok else error_msg,
		}

	return app


app = create_app()
