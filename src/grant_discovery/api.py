from __future__ import annotations

import hmac
import logging
import time
from contextlib import asynccontextmanager
from typing import Any

import httpx
from fastapi import Body, Depends, FastAPI, Header, HTTPException, Query, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import AppConfig, split_csv
from .pipeline import import_opportunity, run_pipeline, search_opportunities
from .store import GrantStore
from .taxonomy import TAXONOMY_VERSION

logger = logging.getLogger(__name__)


def create_app(
    config: AppConfig,
    store: GrantStore | None = None,
    http_client: httpx.Client | None = None,
) -> FastAPI:
    owns_store = store is None
    grant_store = store or GrantStore(config.store.database_url, echo=config.store.echo)
    grant_store.create_schema()

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        try:
            yield
        finally:
            if owns_store:
                grant_store.close()

    app = FastAPI(title="grant-discovery", lifespan=lifespan)

    def verify_secret(authorization: str | None = Header(default=None)) -> None:
        secret = config.server.cron_secret
        if not secret:
            if config.server.require_secret:
                logger.error("Trigger secret required but not configured")
                raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
            logger.warning("No trigger secret configured; accepting unauthenticated call")
            return
        expected = f"Bearer {secret}"
        if not authorization or not hmac.compare_digest(authorization.encode(), expected.encode()):
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    @app.exception_handler(StarletteHTTPException)
    async def http_error(_: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error(_: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={"error": "Invalid request", "details": jsonable_encoder(exc.errors())},
        )

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        started_at = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "http request method=%s path=%s status=%s duration_ms=%.2f",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - started_at) * 1000.0,
        )
        return response

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {"status": "healthy", "taxonomy_version": TAXONOMY_VERSION}

    @app.api_route(
        "/api/cron/grant-discovery",
        methods=["GET", "POST"],
        dependencies=[Depends(verify_secret)],
    )
    def trigger_discovery(
        modules: str | None = Query(default=None),
        sources: str | None = Query(default=None),
        historical: bool = Query(default=False),
        state: str | None = Query(default=None),
    ):
        try:
            summary = run_pipeline(
                config,
                grant_store,
                tags=split_csv(modules),
                source_names=split_csv(sources),
                include_historical=historical,
                state=state,
                client=http_client,
            )
        except Exception:
            logger.exception("Discovery run failed")
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={"error": "Discovery failed"},
            )
        return summary.to_dict()

    @app.get("/api/admin/grants/discover", dependencies=[Depends(verify_secret)])
    def discover_grants(
        modules: str | None = Query(default=None),
        sources: str | None = Query(default=None),
        historical: bool = Query(default=False),
        state: str | None = Query(default=None),
    ):
        try:
            result = search_opportunities(
                config,
                tags=split_csv(modules),
                source_names=split_csv(sources),
                include_historical=historical,
                state=state,
                client=http_client,
            )
        except Exception:
            logger.exception("Grant search failed")
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={"error": "Failed to discover grants"},
            )
        return result.to_dict()

    @app.post("/api/admin/grants/discover", dependencies=[Depends(verify_secret)])
    def import_grant(payload: dict[str, Any] = Body(...)):
        opportunity = payload.get("opportunity")
        if not isinstance(opportunity, dict):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="opportunity is required")
        try:
            outcome = import_opportunity(config, grant_store, opportunity)
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
        except Exception:
            logger.exception("Grant import failed")
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={"error": "Failed to import grant"},
            )

        if outcome.action == "imported":
            record = grant_store.get(outcome.opportunity_number)
            return {
                "success": True,
                "message": "Grant imported successfully",
                "grant": record.to_dict() if record else None,
            }
        if outcome.action == "updated":
            return {
                "success": True,
                "message": "Grant updated",
                "existing_id": outcome.existing_id,
            }
        return {
            "success": False,
            "message": "Grant already imported",
            "existing_id": outcome.existing_id,
        }

    return app
