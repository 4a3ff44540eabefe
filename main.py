# -*- coding: utf-8 -*-
"""
Oscar Tracker API

Thin HTTP surface over the award reconciliation core:
- Award archive import, re-verification and the human review queue
- Best Picture seed, collection sync and overview
- Spreadsheet collection import, match-quality report and approval queue
"""
import logging
import socket
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from importer import (
    approval_stats, approve_movies, best_picture_overview, correct_award_movie,
    correct_collection_movie, import_best_picture_nominees, import_collection_rows,
    import_nominations, integrate_collection, mark_manually_reviewed, match_quality_report,
    remove_movie, reverify_movies, review_queue, review_stats, sync_best_picture,
)
from loaders import nomination_from_dict
from match_quality import MISMATCH_THRESHOLD
from models import BestPictureNominee, ImportProvenance, Severity
from mongodb_client import DuplicateExternalId, NotFound, OscarStore, check_connection, get_store
from review_status import InvalidTransition, ReviewStatus
from settings import Settings, load_settings
from tmdb_client import LookupFailure, TMDBClient


logger = logging.getLogger(__name__)


# ============================================================================
# DEPENDENCIES
# ============================================================================

_settings: Optional[Settings] = None
_store: Optional[OscarStore] = None
_client: Optional[TMDBClient] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def get_oscar_store(settings: Settings = Depends(get_settings)) -> OscarStore:
    global _store
    if _store is None:
        _store = get_store(settings)
    return _store


def get_lookup_client(settings: Settings = Depends(get_settings)) -> TMDBClient:
    global _client
    if _client is None:
        _client = TMDBClient(settings)
    return _client


def raise_http_error(e: Exception):
    """Translate a core exception into the matching HTTP error."""
    if isinstance(e, NotFound):
        raise HTTPException(status_code=404, detail=str(e))
    if isinstance(e, DuplicateExternalId):
        raise HTTPException(status_code=409, detail=str(e))
    if isinstance(e, (InvalidTransition, ValueError)):
        raise HTTPException(status_code=400, detail=str(e))
    if isinstance(e, LookupFailure):
        raise HTTPException(status_code=502, detail=f"Metadata lookup failed: {e.reason}")
    raise e


# ============================================================================
# FASTAPI APPLICATION
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Report store connectivity on startup."""
    conn = check_connection(get_settings())
    if conn.get('connected'):
        logger.info("Connected to MongoDB: %s (%d award movies, %d collection movies)",
                    conn['database'], conn['award_movies'], conn['collection_movies'])
    else:
        logger.warning("MongoDB connection failed: %s", conn.get('error'))
    yield


app = FastAPI(
    title="Oscar Tracker",
    description="Award data reconciliation and match-quality review",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


class OscarImportRequest(BaseModel):
    entries: List[Dict[str, Any]]
    categories: Optional[List[str]] = None


class ReverifyRequest(BaseModel):
    statuses: List[ReviewStatus] = [ReviewStatus.PENDING]


class AwardMovieUpdate(BaseModel):
    tmdb_id: Optional[int] = None
    ceremony_year: Optional[int] = None
    reviewed_by: Optional[str] = None
    notes: Optional[str] = None


class BestPictureImportRequest(BaseModel):
    nominees: List[BestPictureNominee]
    force_reimport: bool = False


class CollectionImportRequest(BaseModel):
    rows: List[ImportProvenance]


class UpdateTmdbRequest(BaseModel):
    tmdb_id: int


class ApproveRequest(BaseModel):
    movie_ids: List[str]
    approved_by: str


@app.get("/api/stats")
def stats(store: OscarStore = Depends(get_oscar_store)):
    """Get record counts."""
    return {
        "status": "ready",
        "award_movies": store.count_award_movies(),
        "nominations": store.count_nominations(),
        "best_picture_nominees": store.count_best_picture_nominees(),
        "review": review_stats(store),
    }


# ----------------------------------------------------------------------------
# Award archive and review queue
# ----------------------------------------------------------------------------

@app.post("/api/oscars/import")
def import_oscars(
    request: OscarImportRequest,
    store: OscarStore = Depends(get_oscar_store),
    client: TMDBClient = Depends(get_lookup_client),
    settings: Settings = Depends(get_settings),
):
    """Import award-archive entries (verifying new movies as they are created)."""
    try:
        records = [nomination_from_dict(entry) for entry in request.entries]
    except (KeyError, ValueError, TypeError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid nomination entry: {e}")
    result = import_nominations(records, store, client, settings, categories=request.categories)
    return result.model_dump()


@app.post("/api/oscars/reverify")
def reverify(
    request: ReverifyRequest,
    store: OscarStore = Depends(get_oscar_store),
    client: TMDBClient = Depends(get_lookup_client),
    settings: Settings = Depends(get_settings),
):
    return reverify_movies(store, client, settings, statuses=request.statuses).model_dump()


@app.post("/api/oscars/integrate")
def integrate(
    user_id: Optional[str] = Query(default=None),
    store: OscarStore = Depends(get_oscar_store),
):
    """Attach award rows to collection movies that share an external id."""
    return integrate_collection(store, user_id).model_dump()


@app.get("/api/oscars/movies/review-queue")
def get_review_queue(
    status: Optional[List[ReviewStatus]] = Query(default=None),
    store: OscarStore = Depends(get_oscar_store),
):
    movies = review_queue(store, status)
    return {"count": len(movies), "movies": movies}


@app.get("/api/oscars/movies/review-stats")
def get_review_stats(store: OscarStore = Depends(get_oscar_store)):
    return review_stats(store)


@app.patch("/api/oscars/movies/{movie_id}")
def update_award_movie(
    movie_id: str,
    request: AwardMovieUpdate,
    store: OscarStore = Depends(get_oscar_store),
    client: TMDBClient = Depends(get_lookup_client),
    settings: Settings = Depends(get_settings),
):
    """
    Correct or sign off an award movie.

    With ``tmdb_id`` the movie is relinked and re-verified; otherwise
    ``reviewed_by`` marks it manually reviewed.
    """
    try:
        if request.tmdb_id is not None:
            movie = correct_award_movie(
                store, client, movie_id, request.tmdb_id,
                ceremony_year=request.ceremony_year, settings=settings,
            )
        elif request.reviewed_by:
            movie = mark_manually_reviewed(store, movie_id, request.reviewed_by, request.notes)
        else:
            raise HTTPException(status_code=400, detail="Provide tmdb_id or reviewed_by")
    except (NotFound, DuplicateExternalId, InvalidTransition, LookupFailure) as e:
        raise_http_error(e)
    return movie.model_dump(mode='json')


# ----------------------------------------------------------------------------
# Best Picture
# ----------------------------------------------------------------------------

@app.get("/api/oscars/best-picture")
def best_picture(
    year: Optional[int] = Query(default=None, description="Ceremony year"),
    winner_only: bool = Query(default=False),
    user_id: Optional[str] = Query(default=None),
    store: OscarStore = Depends(get_oscar_store),
    client: TMDBClient = Depends(get_lookup_client),
):
    nominees = best_picture_overview(store, client, user_id, ceremony_year=year, winner_only=winner_only)
    return {
        "count": len(nominees),
        "in_collection": sum(1 for n in nominees if n['in_collection']),
        "nominees": nominees,
    }


@app.post("/api/oscars/best-picture/import")
def best_picture_import(
    request: BestPictureImportRequest,
    store: OscarStore = Depends(get_oscar_store),
):
    return import_best_picture_nominees(request.nominees, store, force_reimport=request.force_reimport)


@app.post("/api/oscars/best-picture/sync")
def best_picture_sync(
    user_id: Optional[str] = Query(default=None),
    store: OscarStore = Depends(get_oscar_store),
):
    return sync_best_picture(store, user_id).model_dump()


# ----------------------------------------------------------------------------
# Collection import, match quality and approval
# ----------------------------------------------------------------------------

@app.post("/api/import/csv")
def import_csv(
    request: CollectionImportRequest,
    user_id: Optional[str] = Query(default=None),
    store: OscarStore = Depends(get_oscar_store),
    client: TMDBClient = Depends(get_lookup_client),
    settings: Settings = Depends(get_settings),
):
    return import_collection_rows(request.rows, store, client, user_id, settings).model_dump()


@app.get("/api/movies/match-quality")
def match_quality(
    threshold: int = Query(default=MISMATCH_THRESHOLD, ge=0, le=100),
    severity: Optional[Severity] = Query(default=None),
    user_id: Optional[str] = Query(default=None),
    store: OscarStore = Depends(get_oscar_store),
):
    """Imported movies at or below the confidence threshold, lowest first."""
    return match_quality_report(store, threshold=threshold, severity=severity, user_id=user_id)


@app.put("/api/movies/{movie_id}/update-tmdb")
def update_tmdb(
    movie_id: str,
    request: UpdateTmdbRequest,
    store: OscarStore = Depends(get_oscar_store),
    client: TMDBClient = Depends(get_lookup_client),
):
    """Re-point a collection movie at another TMDB record."""
    try:
        movie, analysis = correct_collection_movie(store, client, movie_id, request.tmdb_id)
    except (NotFound, DuplicateExternalId, LookupFailure) as e:
        raise_http_error(e)
    return {
        "movie": movie.model_dump(mode='json'),
        "match_analysis": analysis.model_dump(mode='json') if analysis else None,
    }


@app.post("/api/movies/approve")
def approve(request: ApproveRequest, store: OscarStore = Depends(get_oscar_store)):
    try:
        count = approve_movies(store, request.movie_ids, request.approved_by)
    except NotFound as e:
        raise_http_error(e)
    return {"approved": count}


@app.post("/api/movies/{movie_id}/remove")
def remove(movie_id: str, store: OscarStore = Depends(get_oscar_store)):
    try:
        movie = remove_movie(store, movie_id)
    except NotFound as e:
        raise_http_error(e)
    return movie.model_dump(mode='json')


@app.get("/api/movies/approval-stats")
def get_approval_stats(
    user_id: Optional[str] = Query(default=None),
    store: OscarStore = Depends(get_oscar_store),
):
    return approval_stats(store, user_id)


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================

def find_available_port(start_port=8000, max_attempts=10):
    """Find an available port starting from start_port."""
    for port in range(start_port, start_port + max_attempts):
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
                s.bind(('127.0.0.1', port))
                return port
        except OSError:
            continue
    return None


def main():
    """Run the API server."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    port = find_available_port()
    if port is None:
        logger.error("Could not find an available port (8000-8009).")
        return

    logger.info("Starting server at http://127.0.0.1:%d", port)
    uvicorn.run(app, host="127.0.0.1", port=port, log_level="warning")


if __name__ == "__main__":
    main()
