# -*- coding: utf-8 -*-
"""
Metadata verification

Decides whether the external identifier attached to an award-linked movie
plausibly refers to the claimed title and ceremony year.

Checks, in order:

1. No identifier -> NEEDS_MANUAL_REVIEW, confidence 0
2. Lookup failure -> NEEDS_MANUAL_REVIEW, confidence 0, note names the failure
3. Best title similarity (primary or original title) >= threshold and
   release year within +/-1 of ceremony_year - 1 -> AUTO_VERIFIED
4. Title passes but the provider has no release year -> AUTO_VERIFIED at 90%
   of the title similarity
5. Otherwise -> NEEDS_MANUAL_REVIEW with one note per failed signal
"""

import logging
from typing import Optional, Tuple

from models import MovieDetails, MovieRef, VerificationResult
from normalizers import expected_release_year, normalize_title
from review_status import ReviewStatus
from similarity import similarity
from tmdb_client import LookupFailure


logger = logging.getLogger(__name__)

TITLE_THRESHOLD = 0.85
YEAR_TOLERANCE = 1
NO_YEAR_PENALTY = 0.9


def best_title_match(claimed: str, details: MovieDetails) -> Tuple[float, str]:
    """Best similarity against primary and original titles, with the title that produced it."""
    claimed_norm = normalize_title(claimed)
    best = (similarity(claimed_norm, normalize_title(details.title)), details.title)
    if details.original_title:
        original = similarity(claimed_norm, normalize_title(details.original_title))
        if original > best[0]:
            best = (original, details.original_title)
    return best


def title_similarity(claimed: str, details: MovieDetails) -> float:
    return best_title_match(claimed, details)[0]


def evaluate_details(
    movie: MovieRef,
    ceremony_year: int,
    details: MovieDetails,
    title_threshold: float = TITLE_THRESHOLD,
) -> VerificationResult:
    """Score fetched metadata against the claimed title and ceremony year."""
    best_similarity, compared_title = best_title_match(movie.title, details)
    expected_year = expected_release_year(ceremony_year)
    provider_year = details.release_year
    year_match = provider_year is not None and abs(expected_year - provider_year) <= YEAR_TOLERANCE
    title_match = best_similarity >= title_threshold

    if title_match and year_match:
        return VerificationResult(
            review_status=ReviewStatus.AUTO_VERIFIED,
            confidence_score=best_similarity,
        )

    if title_match and provider_year is None:
        return VerificationResult(
            review_status=ReviewStatus.AUTO_VERIFIED,
            confidence_score=best_similarity * NO_YEAR_PENALTY,
            verification_notes="No release year in metadata; verified on title only.",
        )

    notes = []
    if not title_match:
        notes.append(
            f'Title mismatch: "{movie.title}" vs "{compared_title}" '
            f'({round(best_similarity * 100)}% similar)'
        )
    if provider_year is not None and not year_match:
        notes.append(
            f"Year mismatch: {ceremony_year} ceremony expected {expected_year} film, "
            f"got {provider_year}"
        )

    return VerificationResult(
        review_status=ReviewStatus.NEEDS_MANUAL_REVIEW,
        confidence_score=best_similarity,
        verification_notes='; '.join(notes),
    )


def verify_movie(
    movie: MovieRef,
    ceremony_year: int,
    client,
    title_threshold: float = TITLE_THRESHOLD,
) -> VerificationResult:
    """
    Verify one award-linked movie against the metadata service.

    Lookup failures never propagate: they become a NEEDS_MANUAL_REVIEW verdict.

    Args:
        movie: Claimed title and external identifier
        ceremony_year: Ceremony the movie was nominated at
        client: Metadata lookup client exposing ``get_details(tmdb_id)``
        title_threshold: Minimum title similarity for automatic verification

    Returns:
        VerificationResult with status, confidence (0-1) and notes
    """
    if not movie.tmdb_id:
        return VerificationResult(
            review_status=ReviewStatus.NEEDS_MANUAL_REVIEW,
            confidence_score=0,
            verification_notes="No external identifier in source data.",
        )

    try:
        details: Optional[MovieDetails] = client.get_details(movie.tmdb_id)
    except LookupFailure as e:
        logger.warning("Verification lookup failed for %r (%s): %s", movie.title, movie.tmdb_id, e)
        return VerificationResult(
            review_status=ReviewStatus.NEEDS_MANUAL_REVIEW,
            confidence_score=0,
            verification_notes=f"Lookup failed: {e.reason}",
        )

    return evaluate_details(movie, ceremony_year, details, title_threshold=title_threshold)
