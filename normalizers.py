# -*- coding: utf-8 -*-
"""
Normalizers

Centralized normalization functions for award and collection records.
Every comparison made by the verifier and the matchers goes through these
helpers so that titles, years and category labels are compared consistently.
"""

import re
import unicodedata
from datetime import date, datetime
from typing import Optional, Union


# =============================================================================
# TITLE NORMALIZATION
# =============================================================================

_LEADING_ARTICLE_RE = re.compile(r'^(the|a|an)\s+')
_NON_WORD_RE = re.compile(r'[^\w\s]')
_WHITESPACE_RE = re.compile(r'\s+')


def strip_diacritics(text: str) -> str:
    """Remove combining marks (e.g. "Pérez" -> "Perez")."""
    decomposed = unicodedata.normalize('NFKD', text)
    return ''.join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_title(title: Optional[str]) -> str:
    """
    Canonicalize a free-text title for comparison.

    Lower-cases, strips diacritics and punctuation, collapses whitespace and
    drops leading articles ("the", "a", "an" as whole words). Applying it
    twice gives the same result as applying it once.

    Args:
        title: Raw title

    Returns:
        Normalized title (lowercase) or empty string
    """
    if not title:
        return ''

    text = strip_diacritics(title).lower()
    text = _NON_WORD_RE.sub('', text)
    text = _WHITESPACE_RE.sub(' ', text).strip()

    # "The A Team" must lose both articles, otherwise a second pass would
    # strip the second one.
    match = _LEADING_ARTICLE_RE.match(text)
    while match:
        text = text[match.end():]
        match = _LEADING_ARTICLE_RE.match(text)

    return text.strip()


def normalize_person(name: Optional[str]) -> str:
    """Lower-case, diacritic-free, whitespace-collapsed person name."""
    if not name:
        return ''
    text = strip_diacritics(name).lower()
    return _WHITESPACE_RE.sub(' ', text).strip()


# =============================================================================
# CEREMONY YEAR RESOLUTION
# =============================================================================

_CEREMONY_LABEL_RE = re.compile(r'^\s*(\d{4})')


def resolve_film_year(raw_year: Union[int, str]) -> int:
    """
    Resolve a raw "film year" to a single calendar year.

    Dual-year labels from the early ceremonies resolve to the later year:
    "1927/28" -> 1928, "1932/1933" -> 1933, "1999/00" -> 2000.

    Raises:
        ValueError: if the value holds no year
    """
    if isinstance(raw_year, bool):
        raise ValueError(f"Not a year: {raw_year!r}")
    if isinstance(raw_year, int):
        return raw_year

    text = str(raw_year).strip()
    if '/' in text:
        first, second = (part.strip() for part in text.split('/', 1))
        first_year = int(first)
        second_year = int(second)
        # Two-digit second half stays in the first half's century unless it wraps
        if second_year < 100:
            century = (first_year // 100) * 100
            if second_year < first_year % 100:
                century += 100
            return century + second_year
        return second_year

    try:
        return int(text)
    except ValueError:
        raise ValueError(f"Not a year: {raw_year!r}") from None


def resolve_ceremony_year(raw_year: Union[int, str]) -> int:
    """
    Convert a film year (or dual-year label) to the ceremony year.

    Films from year X are honored at the ceremony held in year X+1:
    "2023" -> 2024, "1927/28" -> 1929.
    """
    return resolve_film_year(raw_year) + 1


def parse_ceremony_label(label: str) -> int:
    """
    Parse a ceremony label that already names the ceremony year.

    "2025 (97th)" -> 2025

    Raises:
        ValueError: if the label does not start with a year
    """
    match = _CEREMONY_LABEL_RE.match(label or '')
    if not match:
        raise ValueError(f"Not a ceremony label: {label!r}")
    return int(match.group(1))


def expected_release_year(ceremony_year: int) -> int:
    """Year a film honored at ``ceremony_year`` was expected to be released."""
    return ceremony_year - 1


def extract_year(value: Union[None, int, str, date, datetime]) -> Optional[int]:
    """
    Pull a calendar year out of a release date or a year-like value.

    Accepts ISO dates ("2023-07-21"), bare years ("2023", 2023) and
    date/datetime objects. Anything else yields None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (date, datetime)):
        return value.year
    if isinstance(value, int):
        return value

    text = str(value).strip()
    match = re.match(r'^(\d{4})', text)
    if not match:
        return None
    return int(match.group(1))


# =============================================================================
# CATEGORY CLASSIFICATION
# =============================================================================

class CategoryGroup:
    ACTING = 'Acting'
    DIRECTING = 'Directing'
    BEST_PICTURE = 'Best Picture'
    TECHNICAL = 'Technical'


def classify_category(category: Optional[str]) -> str:
    """
    Map a raw award-category label to a coarse category group.

    Rules in order:

    1. Labels naming an actor or actress -> Acting
    2. Labels naming a director -> Directing
    3. Exactly "Best Picture" -> Best Picture
    4. Everything else -> Technical
    """
    if not category:
        return CategoryGroup.TECHNICAL

    label = category.strip()
    if 'Actor' in label or 'Actress' in label:
        return CategoryGroup.ACTING
    if 'Director' in label:
        return CategoryGroup.DIRECTING
    if label == 'Best Picture':
        return CategoryGroup.BEST_PICTURE
    return CategoryGroup.TECHNICAL


# =============================================================================
# SOURCE CELL PARSING
# =============================================================================

_WINNER_RE = re.compile(r'\s*\(winner\)', re.IGNORECASE)
_TIE_RE = re.compile(r'\s*\(tied?\)', re.IGNORECASE)
_NOMINEE_SPLIT_RE = re.compile(r'^(.+?)\s+[–-]\s+(.+)$')


def _strip_markers(part: str):
    is_winner = bool(_WINNER_RE.search(part))
    is_tied = bool(_TIE_RE.search(part))
    clean = _TIE_RE.sub('', _WINNER_RE.sub('', part)).strip()
    return clean, is_winner, is_tied


def parse_movie_cell(cell: Optional[str]) -> list:
    """
    Split a comma-separated movie cell into entries.

    "Oppenheimer (winner), Barbie" ->
        [{'title': 'Oppenheimer', 'is_winner': True, 'is_tied': False},
         {'title': 'Barbie', 'is_winner': False, 'is_tied': False}]
    """
    if not cell:
        return []

    movies = []
    for part in cell.split(','):
        title, is_winner, is_tied = _strip_markers(part.strip())
        if title:
            movies.append({'title': title, 'is_winner': is_winner, 'is_tied': is_tied})
    return movies


def parse_nominee_cell(cell: Optional[str]) -> list:
    """
    Split a person-category cell of "Name – Movie" entries.

    "Cillian Murphy – Oppenheimer (winner), Bradley Cooper – Maestro" ->
        [{'name': 'Cillian Murphy', 'movie': 'Oppenheimer', 'is_winner': True, ...},
         {'name': 'Bradley Cooper', 'movie': 'Maestro', 'is_winner': False, ...}]

    Entries without a separator are skipped.
    """
    if not cell:
        return []

    nominees = []
    for part in cell.split(','):
        clean, is_winner, is_tied = _strip_markers(part.strip())
        match = _NOMINEE_SPLIT_RE.match(clean)
        if not match:
            continue
        nominees.append({
            'name': match.group(1).strip(),
            'movie': match.group(2).strip(),
            'is_winner': is_winner,
            'is_tied': is_tied,
        })
    return nominees


# =============================================================================
# NATURAL KEYS
# =============================================================================

def movie_key(external_id: Optional[int], title: Optional[str]) -> str:
    """
    Natural key of an award-linked movie.

    The external identifier when present, otherwise the normalized title.
    """
    if external_id:
        return f'tmdb:{int(external_id)}'
    return f'title:{normalize_title(title)}'
