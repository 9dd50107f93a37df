"""FastAPI read API over harvested opportunities."""
import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from samharvest.config import STATE_DB, config
from samharvest.errors import StoreError
from samharvest.query.filters import MAX_LIMIT, SearchFilters
from samharvest.query.models import DetailResponse, SearchResponse, StatsResponse
from samharvest.query.service import QueryService
from samharvest.store.models import CallLogEntry
from samharvest.store.records import RecordStore
from samharvest.store.state import StateDB

logger = logging.getLogger(__name__)


def create_app(db_path: Path = STATE_DB) -> FastAPI:
    """Build the API bound to one database file."""
    records = RecordStore(db_path)
    state = StateDB(db_path)
    service = QueryService(records, state)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if not Path(db_path).exists():
            logger.warning(f"Database not found at {db_path}; run a sync first to populate data")
        await records.initialize()
        yield

    app = FastAPI(title="samharvest API", version="0.1.0", lifespan=lifespan)
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["GET"], allow_headers=["*"])
    app.state.query_service = service

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError):
        logger.error(f"Store error serving {request.url.path}: {exc}")
        return JSONResponse(status_code=500, content={"detail": "Storage error"})

    def get_service() -> QueryService:
        return app.state.query_service

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.get("/api/opportunities", response_model=SearchResponse)
    async def list_opportunities(
        search: Optional[str] = None,
        naics_code: Optional[str] = Query(default=None, description="Comma-separated NAICS codes"),
        opp_type: Optional[str] = None,
        set_aside: Optional[str] = None,
        state: Optional[str] = None,
        department: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        active_only: bool = False,
        limit: int = Query(default=25, ge=1),
        offset: int = Query(default=0, ge=0),
        service: QueryService = Depends(get_service),
    ):
        """Filtered, paginated list of stored opportunities."""
        try:
            filters = SearchFilters(
                search=search,
                naics_codes=naics_code,
                opp_type=opp_type,
                set_aside=set_aside,
                state=state,
                department=department,
                date_from=date_from,
                date_to=date_to,
                active_only=active_only,
                limit=min(limit, MAX_LIMIT),
                offset=offset,
            )
        except ValidationError as e:
            raise HTTPException(status_code=422, detail=str(e))
        return await service.search(filters)

    @app.get("/api/opportunities/{notice_id}", response_model=DetailResponse)
    async def get_opportunity(notice_id: str, service: QueryService = Depends(get_service)):
        """Full opportunity with its contacts."""
        detail = await service.get_record(notice_id)
        if detail is None:
            raise HTTPException(status_code=404, detail=f"Opportunity {notice_id} not found")
        return detail

    @app.get("/api/stats", response_model=StatsResponse)
    async def get_stats(service: QueryService = Depends(get_service)):
        """Facet counts over the whole corpus."""
        return await service.facet_counts()

    @app.get("/api/api-calls", response_model=list[CallLogEntry])
    async def get_api_calls(
        limit: int = Query(default=100, ge=1, le=1000),
        service: QueryService = Depends(get_service),
    ):
        """Most recent calls made to the source, newest first."""
        return await service.recent_calls(limit)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
