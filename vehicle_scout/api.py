"""
FastAPI application for Vehicle Scout.
"""

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()

from contextlib import asynccontextmanager
from typing import List, Optional
import logging
import time

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from vehicle_scout.cache import ResultCache
from vehicle_scout.models import SearchQuery
from vehicle_scout.orchestrator import SearchOrchestrator

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class SearchRequest(BaseModel):
    """Search parameters accepted by POST /search."""
    brand: str = Field(..., min_length=1)
    model: Optional[str] = None
    max_price: Optional[int] = Field(None, ge=0)
    min_price: Optional[int] = Field(None, ge=0)
    year_min: Optional[int] = None
    year_max: Optional[int] = None
    mileage_max: Optional[int] = Field(None, ge=0)
    fuel_type: Optional[str] = None
    location: Optional[str] = None
    radius_km: Optional[int] = Field(None, ge=0)
    excluded_sites: List[str] = Field(default_factory=list)

    def to_query(self) -> SearchQuery:
        return SearchQuery(
            brand=self.brand.strip(),
            model=self.model,
            max_price=self.max_price,
            min_price=self.min_price,
            year_min=self.year_min,
            year_max=self.year_max,
            mileage_max=self.mileage_max,
            fuel_type=self.fuel_type,
            location=self.location,
            radius_km=self.radius_km,
            excluded_sites=tuple(self.excluded_sites),
        )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    logger.info("Starting Vehicle Scout API...")
    app.state.orchestrator = SearchOrchestrator()
    app.state.cache = ResultCache.from_env()

    yield

    logger.info("Shutting down Vehicle Scout API...")
    await app.state.cache.close()


def get_orchestrator(request: Request) -> SearchOrchestrator:
    return request.app.state.orchestrator


def get_cache(request: Request) -> ResultCache:
    return request.app.state.cache


router = APIRouter()


@router.post("/search")
async def search_vehicles(
    search_request: SearchRequest,
    orchestrator: SearchOrchestrator = Depends(get_orchestrator),
    cache: ResultCache = Depends(get_cache),
):
    """
    Search every active site for used vehicles.

    1. Checks the result cache
    2. Runs the multi-site search
    3. Caches the result for 5 minutes
    """
    if (
        search_request.min_price is not None
        and search_request.max_price is not None
        and search_request.min_price > search_request.max_price
    ):
        raise HTTPException(status_code=422, detail="min_price cannot be greater than max_price")

    query = search_request.to_query()
    start_time = time.time()

    cached = await cache.get(query)
    if cached:
        logger.info(f"Cache hit for query: {query.text}")
        return {**cached, "cached": True}

    result = await orchestrator.search(query)
    payload = result.to_dict()
    await cache.set(query, payload)

    logger.info(f"Search '{query.text}' answered in {(time.time() - start_time) * 1000:.0f}ms")
    return {**payload, "cached": False}


app = FastAPI(
    title="Vehicle Scout API",
    description="Multi-site used vehicle listing search",
    version="0.1.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "version": "0.1.0"
    }
