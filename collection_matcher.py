# -*- coding: utf-8 -*-
"""
Collection matcher

Finds the collection movie a nominee refers to using an ordered list of
matching tiers. The first tier that produces any candidate wins; inside a
tier the highest confidence wins and ties go to the candidate that appears
first in the input list. A tier-1 (external identifier) hit is unambiguous
and short-circuits everything below it.

| Tier | Condition                                                  | Confidence |
|------|------------------------------------------------------------|------------|
| 1    | external identifier exact match                            | 100        |
| 2    | exact title (case-insensitive) and year within +/-1        | 95         |
| 3    | exact title, year unknown or outside tolerance             | 90         |
| 4    | normalized title (primary/original/import) and year +/-1   | 85         |
| 5    | normalized title, year not satisfied                       | 75         |
| 6    | normalized substring either direction and year +/-1        | 65         |
| 7    | director substring either direction and year +/-2          | 60         |
"""

import math
from collections import defaultdict
from typing import Callable, Dict, List, NamedTuple, Optional, Sequence

from pydantic import BaseModel

from models import BestPictureNominee, CollectionMatch, CollectionMovie
from normalizers import expected_release_year, normalize_person, normalize_title


# =============================================================================
# QUERY
# =============================================================================

class MatchQuery(BaseModel):
    """What is known about a nominee when looking it up in a collection."""
    title: str
    tmdb_id: Optional[int] = None
    director: Optional[str] = None
    release_year: Optional[int] = None

    @classmethod
    def from_best_picture(cls, nominee: BestPictureNominee) -> 'MatchQuery':
        return cls(
            title=nominee.movie_title,
            tmdb_id=nominee.tmdb_id,
            director=nominee.director,
            release_year=nominee.release_year or expected_release_year(nominee.ceremony_year),
        )

    @classmethod
    def from_nomination(
        cls,
        title: str,
        ceremony_year: int,
        tmdb_id: Optional[int] = None,
        director: Optional[str] = None,
    ) -> 'MatchQuery':
        return cls(
            title=title,
            tmdb_id=tmdb_id,
            director=director,
            release_year=expected_release_year(ceremony_year),
        )


class TierHit(NamedTuple):
    confidence: int
    match_type: str


# =============================================================================
# SIGNALS
# =============================================================================

def year_difference(query: MatchQuery, movie: CollectionMovie) -> float:
    """Absolute year difference, infinite when either side has no year."""
    movie_year = movie.release_year
    if query.release_year is None or movie_year is None:
        return math.inf
    return abs(query.release_year - movie_year)


def exact_title_match(query: MatchQuery, movie: CollectionMovie) -> bool:
    return (movie.title or '').strip().lower() == (query.title or '').strip().lower()


def candidate_titles(movie: CollectionMovie) -> List[str]:
    """Normalized primary, original and import-source titles (non-empty only)."""
    titles = [movie.title, movie.original_title]
    if movie.provenance:
        titles.append(movie.provenance.title)
    normalized = [normalize_title(t) for t in titles if t]
    return [t for t in normalized if t]


def normalized_title_match(query: MatchQuery, movie: CollectionMovie) -> bool:
    target = normalize_title(query.title)
    if not target:
        return False
    return any(title == target for title in candidate_titles(movie))


def partial_title_match(query: MatchQuery, movie: CollectionMovie) -> bool:
    target = normalize_title(query.title)
    if not target:
        return False
    return any(target in title or title in target for title in candidate_titles(movie))


def director_match(query: MatchQuery, movie: CollectionMovie) -> bool:
    source = normalize_person(query.director)
    target = normalize_person(movie.director)
    if not source or not target:
        return False
    return source in target or target in source


# =============================================================================
# TIER EVALUATORS
# =============================================================================

def tier_external_id(query: MatchQuery, movie: CollectionMovie) -> Optional[TierHit]:
    if query.tmdb_id and movie.tmdb_id == query.tmdb_id:
        return TierHit(100, 'tmdb_id')
    return None


def tier_exact_title_year(query: MatchQuery, movie: CollectionMovie) -> Optional[TierHit]:
    if exact_title_match(query, movie) and year_difference(query, movie) <= 1:
        return TierHit(95, 'exact_title_year')
    return None


def tier_exact_title(query: MatchQuery, movie: CollectionMovie) -> Optional[TierHit]:
    if exact_title_match(query, movie):
        return TierHit(90, 'exact_title')
    return None


def tier_normalized_title_year(query: MatchQuery, movie: CollectionMovie) -> Optional[TierHit]:
    if normalized_title_match(query, movie) and year_difference(query, movie) <= 1:
        return TierHit(85, 'normalized_title_year')
    return None


def tier_normalized_title(query: MatchQuery, movie: CollectionMovie) -> Optional[TierHit]:
    if normalized_title_match(query, movie):
        return TierHit(75, 'normalized_title')
    return None


def tier_partial_title_year(query: MatchQuery, movie: CollectionMovie) -> Optional[TierHit]:
    if year_difference(query, movie) <= 1 and partial_title_match(query, movie):
        return TierHit(65, 'partial_title_year')
    return None


def tier_director_year(query: MatchQuery, movie: CollectionMovie) -> Optional[TierHit]:
    if year_difference(query, movie) <= 2 and director_match(query, movie):
        return TierHit(60, 'director_year')
    return None


TierEvaluator = Callable[[MatchQuery, CollectionMovie], Optional[TierHit]]

# Priority order: index + 1 is the tier number
TIERS: List[TierEvaluator] = [
    tier_external_id,
    tier_exact_title_year,
    tier_exact_title,
    tier_normalized_title_year,
    tier_normalized_title,
    tier_partial_title_year,
    tier_director_year,
]


# =============================================================================
# MATCHING
# =============================================================================

def evaluate_tier(
    evaluator: TierEvaluator,
    query: MatchQuery,
    movies: Sequence[CollectionMovie],
) -> Optional[CollectionMatch]:
    """Best candidate of a single tier; earliest candidate wins ties."""
    best: Optional[CollectionMatch] = None
    for movie in movies:
        hit = evaluator(query, movie)
        if hit is None:
            continue
        if best is None or hit.confidence > best.confidence:
            best = CollectionMatch(movie=movie, confidence=hit.confidence, match_type=hit.match_type)
    return best


def find_best_match(
    query: MatchQuery,
    movies: Sequence[CollectionMovie],
    tiers: Sequence[TierEvaluator] = TIERS,
    first_tier: int = 1,
) -> CollectionMatch:
    """
    Return the best collection match for a nominee.

    Args:
        query: Nominee title, external id, director and approximate release year
        movies: Candidate collection movies, in priority order for tie-breaks
        tiers: Tier evaluators in priority order
        first_tier: Tier number of ``tiers[0]``

    Returns:
        CollectionMatch; ``matched`` is False and confidence 0 when no tier hits
    """
    for tier_number, evaluator in enumerate(tiers, start=first_tier):
        match = evaluate_tier(evaluator, query, movies)
        if match is not None:
            match.tier = tier_number
            return match
    return CollectionMatch()


class CollectionMatcher:
    """
    Collection matcher with an external-identifier index.

    Tier 1 is answered from the index without scanning; the remaining tiers
    scan the collection in its original order.
    """

    def __init__(self, movies: Sequence[CollectionMovie]):
        self.movies = list(movies)
        self.movies_by_tmdb_id: Dict[int, List[CollectionMovie]] = defaultdict(list)
        for movie in self.movies:
            if movie.tmdb_id:
                self.movies_by_tmdb_id[movie.tmdb_id].append(movie)
        self.movies_by_tmdb_id = dict(self.movies_by_tmdb_id)

    def match(self, query: MatchQuery) -> CollectionMatch:
        if query.tmdb_id and query.tmdb_id in self.movies_by_tmdb_id:
            movie = self.movies_by_tmdb_id[query.tmdb_id][0]
            return CollectionMatch(movie=movie, confidence=100, tier=1, match_type='tmdb_id')
        return find_best_match(query, self.movies, tiers=TIERS[1:], first_tier=2)
