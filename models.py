# -*- coding: utf-8 -*-
"""
Entity and verdict models shared by the matchers, the store and the API.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel

from normalizers import extract_year
from review_status import ApprovalStatus, ReviewStatus


# =============================================================================
# AWARD RECORDS
# =============================================================================

class MovieRef(BaseModel):
    """A movie referenced by a nomination record."""
    title: str
    tmdb_id: Optional[int] = None
    imdb_id: Optional[str] = None


class NominationRecord(BaseModel):
    """One category nomination in one ceremony year, as read from a source."""
    ceremony_year: int
    category: str
    nominees: List[str] = []
    movies: List[MovieRef] = []
    is_winner: bool = False


class CanonicalCategory(BaseModel):
    id: Optional[str] = None
    name: str
    category_group: str


class CanonicalNomination(BaseModel):
    id: Optional[str] = None
    ceremony_year: int
    category_id: str
    movie_id: Optional[str] = None
    nominee_name: Optional[str] = None
    is_winner: bool = False


class AwardLinkedMovie(BaseModel):
    """A movie known through award records."""
    id: Optional[str] = None
    title: str
    tmdb_id: Optional[int] = None
    imdb_id: Optional[str] = None
    review_status: ReviewStatus = ReviewStatus.PENDING
    confidence_score: Optional[float] = None
    verification_notes: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None


class BestPictureNominee(BaseModel):
    id: Optional[str] = None
    ceremony_year: int
    movie_title: str
    release_year: Optional[int] = None
    is_winner: bool = False
    tmdb_id: Optional[int] = None
    director: Optional[str] = None


class AwardData(BaseModel):
    """Award row attached to a collection movie."""
    id: Optional[str] = None
    movie_id: str
    ceremony_year: int
    category: str
    nomination_type: str = 'nominated'


# =============================================================================
# COLLECTION RECORDS
# =============================================================================

class ImportProvenance(BaseModel):
    """The spreadsheet row a collection movie was imported from."""
    row_number: int
    title: Optional[str] = None
    director: Optional[str] = None
    year: Optional[str] = None
    notes: Optional[str] = None


class CollectionMovie(BaseModel):
    id: Optional[str] = None
    user_id: Optional[str] = None
    tmdb_id: int
    title: str
    original_title: Optional[str] = None
    director: Optional[str] = None
    release_date: Optional[str] = None
    poster_path: Optional[str] = None
    provenance: Optional[ImportProvenance] = None
    approval_status: ApprovalStatus = ApprovalStatus.PENDING
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None

    @property
    def release_year(self) -> Optional[int]:
        return extract_year(self.release_date)


class Severity(str, Enum):
    LOW = 'low'
    MEDIUM = 'medium'
    HIGH = 'high'


class MatchAnalysis(BaseModel):
    """Match-quality verdict for a spreadsheet-imported collection movie."""
    movie_id: Optional[str] = None
    confidence_score: int
    severity: Severity
    mismatches: List[str] = []
    title_similarity: Optional[int] = None
    director_similarity: Optional[int] = None
    year_difference: Optional[int] = None
    updated_at: Optional[datetime] = None


# =============================================================================
# METADATA LOOKUP
# =============================================================================

class MovieDetails(BaseModel):
    """Subset of the metadata provider's movie payload used by the core."""
    id: int
    title: str
    original_title: Optional[str] = None
    release_date: Optional[str] = None
    poster_path: Optional[str] = None
    imdb_id: Optional[str] = None
    director: Optional[str] = None

    @property
    def release_year(self) -> Optional[int]:
        return extract_year(self.release_date)


# =============================================================================
# VERDICTS AND JOB SUMMARIES
# =============================================================================

class VerificationResult(BaseModel):
    review_status: ReviewStatus
    confidence_score: float
    verification_notes: Optional[str] = None


class CollectionMatch(BaseModel):
    """Best collection match for one nominee (or the absence of one)."""
    movie: Optional[CollectionMovie] = None
    confidence: int = 0
    tier: Optional[int] = None
    match_type: str = 'no_match'

    @property
    def matched(self) -> bool:
        return self.movie is not None


class ImportStats(BaseModel):
    total: int = 0
    processed: int = 0
    categories_created: int = 0
    movies_created: int = 0
    movies_verified: int = 0
    movies_auto_verified: int = 0
    movies_needs_review: int = 0
    movies_skipped_existing: int = 0
    nominations_created: int = 0
    nominations_skipped: int = 0
    errors: int = 0
    cancelled: bool = False


class SyncStats(BaseModel):
    processed: int = 0
    synced: int = 0
    created: int = 0
    updated: int = 0
    not_in_collection: int = 0
    errors: int = 0
    cancelled: bool = False
