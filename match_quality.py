# -*- coding: utf-8 -*-
"""
Match quality assessment

Scores how well a spreadsheet-imported collection movie agrees with the
metadata record it was matched to. Confidence starts at 100 and each failed
signal subtracts from it:

- Title similarity below 80: (100 - similarity) * 0.6
- Director similarity below 80: (100 - similarity) * 0.3
- Import row has a director but the match has none: flat 20
- Year difference above 1: min(difference * 5, 30)

A missing signal on either side (other than the director case above) is
skipped, not counted as a mismatch.
"""

from typing import Dict, Iterable, List, Optional

from models import CollectionMovie, MatchAnalysis, Severity
from normalizers import extract_year
from similarity import similarity_percent


# =============================================================================
# WEIGHTS AND THRESHOLDS
# =============================================================================

MISMATCH_THRESHOLD = 80       # similarity percentage below which a signal mismatches
TITLE_WEIGHT = 0.6
DIRECTOR_WEIGHT = 0.3
MISSING_DIRECTOR_PENALTY = 20
YEAR_TOLERANCE = 1
YEAR_PENALTY_PER_YEAR = 5
YEAR_PENALTY_CAP = 30

HIGH_SEVERITY_BELOW = 50
MEDIUM_SEVERITY_BELOW = 80


def severity_for(confidence: float) -> Severity:
    """high below 50, medium below 80, otherwise low."""
    if confidence < HIGH_SEVERITY_BELOW:
        return Severity.HIGH
    if confidence < MEDIUM_SEVERITY_BELOW:
        return Severity.MEDIUM
    return Severity.LOW


# =============================================================================
# ASSESSMENT
# =============================================================================

def assess_signals(
    source_title: Optional[str],
    matched_title: Optional[str],
    source_director: Optional[str],
    matched_director: Optional[str],
    source_year,
    matched_year: Optional[int],
) -> MatchAnalysis:
    """
    Compute confidence, severity and mismatches from raw signal pairs.

    Args:
        source_title: Title as written in the import row
        matched_title: Title of the matched metadata record
        source_director: Director as written in the import row
        matched_director: Director of the matched metadata record
        source_year: Year as written in the import row (string or int)
        matched_year: Release year of the matched metadata record

    Returns:
        MatchAnalysis without a movie id
    """
    confidence = 100.0
    mismatches: List[str] = []

    title_similarity = None
    if source_title and matched_title:
        title_similarity = similarity_percent(source_title, matched_title)
        if title_similarity < MISMATCH_THRESHOLD:
            mismatches.append(f'Title mismatch: "{source_title}" vs "{matched_title}"')
            confidence -= (100 - title_similarity) * TITLE_WEIGHT

    director_similarity = None
    if source_director and matched_director:
        director_similarity = similarity_percent(source_director, matched_director)
        if director_similarity < MISMATCH_THRESHOLD:
            mismatches.append(f'Director mismatch: "{source_director}" vs "{matched_director}"')
            confidence -= (100 - director_similarity) * DIRECTOR_WEIGHT
    elif source_director and not matched_director:
        mismatches.append(f'Import has director "{source_director}" but the match has none')
        confidence -= MISSING_DIRECTOR_PENALTY

    year_diff = None
    parsed_source_year = extract_year(source_year)
    if parsed_source_year is not None and matched_year is not None:
        year_diff = abs(parsed_source_year - matched_year)
        if year_diff > YEAR_TOLERANCE:
            mismatches.append(f"Year mismatch: {source_year} vs {matched_year}")
            confidence -= min(year_diff * YEAR_PENALTY_PER_YEAR, YEAR_PENALTY_CAP)

    # Round half up, then clamp
    final = int(min(100.0, max(0.0, confidence)) + 0.5)

    return MatchAnalysis(
        confidence_score=final,
        severity=severity_for(final),
        mismatches=mismatches,
        title_similarity=title_similarity,
        director_similarity=director_similarity,
        year_difference=year_diff,
    )


def assess_match_quality(movie: CollectionMovie) -> Optional[MatchAnalysis]:
    """
    Assess a collection movie against its currently matched metadata.

    Returns:
        MatchAnalysis, or None when the movie was not spreadsheet-imported
    """
    provenance = movie.provenance
    if provenance is None:
        return None

    analysis = assess_signals(
        source_title=provenance.title,
        matched_title=movie.title,
        source_director=provenance.director,
        matched_director=movie.director,
        source_year=provenance.year,
        matched_year=movie.release_year,
    )
    analysis.movie_id = movie.id
    return analysis


# =============================================================================
# REPORTING
# =============================================================================

def filter_assessments(
    assessments: Iterable[MatchAnalysis],
    threshold: int = MISMATCH_THRESHOLD,
    severity: Optional[Severity] = None,
) -> List[MatchAnalysis]:
    """Keep assessments at or below ``threshold`` (and of ``severity``), lowest first."""
    selected = [a for a in assessments if a.confidence_score <= threshold]
    if severity is not None:
        severity = Severity(severity)
        selected = [a for a in selected if a.severity == severity]
    selected.sort(key=lambda a: a.confidence_score)
    return selected


def summarize_assessments(
    assessments: List[MatchAnalysis],
    low_confidence: List[MatchAnalysis],
) -> Dict[str, int]:
    return {
        'total': len(assessments),
        'low_confidence': len(low_confidence),
        'high': sum(1 for a in assessments if a.severity == Severity.HIGH),
        'medium': sum(1 for a in assessments if a.severity == Severity.MEDIUM),
        'low': sum(1 for a in assessments if a.severity == Severity.LOW),
    }
