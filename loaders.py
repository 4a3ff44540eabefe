# -*- coding: utf-8 -*-
"""
Bulk input sources

Readers for the two record sources that feed the matchers:

- award archives (hand-authored JSON, or the wide per-ceremony CSV export)
  -> NominationRecord / BestPictureNominee
- collection spreadsheet exports -> ImportProvenance rows
"""
import csv
import json
import logging
from typing import Dict, List, Optional

from models import BestPictureNominee, ImportProvenance, MovieRef, NominationRecord
from normalizers import (
    parse_ceremony_label, parse_movie_cell, parse_nominee_cell, resolve_ceremony_year,
)


logger = logging.getLogger(__name__)

# Wide CSV: column index -> category
ACADEMY_CSV_PERSON_COLUMNS = {
    2: 'Best Actor',
    3: 'Best Actress',
    4: 'Best Director',
}


def _optional_int(value) -> Optional[int]:
    if value in (None, ''):
        return None
    return int(value)


def nomination_from_dict(entry: Dict) -> NominationRecord:
    """
    Build a NominationRecord from one archive entry.

    Entries carry either ``ceremony_year`` directly or a film ``year``
    ("2023", "1927/28") that is resolved to the ceremony year.
    """
    if entry.get('ceremony_year') is not None:
        ceremony_year = int(entry['ceremony_year'])
    else:
        ceremony_year = resolve_ceremony_year(entry['year'])

    movies = [
        MovieRef(
            title=m['title'],
            tmdb_id=_optional_int(m.get('tmdb_id')),
            imdb_id=m.get('imdb_id') or None,
        )
        for m in entry.get('movies', []) or []
        if m.get('title')
    ]
    return NominationRecord(
        ceremony_year=ceremony_year,
        category=entry['category'],
        nominees=[n for n in entry.get('nominees', []) or [] if n],
        movies=movies,
        is_winner=bool(entry.get('won', entry.get('is_winner', False))),
    )


def load_nominations_json(path: str) -> List[NominationRecord]:
    """Load an award-archive JSON file (a list of nomination entries)."""
    with open(path, 'r', encoding='utf-8') as f:
        entries = json.load(f)

    records = []
    for index, entry in enumerate(entries):
        try:
            records.append(nomination_from_dict(entry))
        except (KeyError, ValueError, TypeError) as e:
            logger.warning("Skipping malformed nomination entry %d: %s", index, e)
    logger.info("Loaded %d nominations from %s", len(records), path)
    return records


def load_academy_csv(path: str) -> List[NominationRecord]:
    """
    Load the wide per-ceremony CSV export.

    Columns: ceremony label ("2025 (97th)"), Best Picture cell, then one cell
    each for Best Actor, Best Actress and Best Director in "Name – Movie"
    form. Winner and tie markers are read from the cells.
    """
    records = []
    with open(path, 'r', encoding='utf-8', newline='') as f:
        reader = csv.reader(f)
        next(reader, None)  # header
        for row in reader:
            if not row or not row[0].strip():
                continue
            try:
                ceremony_year = parse_ceremony_label(row[0])
            except ValueError as e:
                logger.warning("Skipping row with bad ceremony label: %s", e)
                continue

            if len(row) > 1:
                for movie in parse_movie_cell(row[1]):
                    records.append(NominationRecord(
                        ceremony_year=ceremony_year,
                        category='Best Picture',
                        movies=[MovieRef(title=movie['title'])],
                        is_winner=movie['is_winner'],
                    ))

            for column, category in ACADEMY_CSV_PERSON_COLUMNS.items():
                if len(row) <= column:
                    continue
                for nominee in parse_nominee_cell(row[column]):
                    records.append(NominationRecord(
                        ceremony_year=ceremony_year,
                        category=category,
                        nominees=[nominee['name']],
                        movies=[MovieRef(title=nominee['movie'])],
                        is_winner=nominee['is_winner'],
                    ))

    logger.info("Loaded %d nominations from %s", len(records), path)
    return records


def load_best_picture_json(path: str) -> List[BestPictureNominee]:
    """Load the Best Picture seed file."""
    with open(path, 'r', encoding='utf-8') as f:
        entries = json.load(f)
    return [BestPictureNominee.model_validate(entry) for entry in entries]


def load_collection_csv(path: str) -> List[ImportProvenance]:
    """
    Load a collection spreadsheet export.

    Expected headers: title, director, year, notes (case-insensitive). The
    row number is taken from a ``row`` column when present, otherwise the
    1-based position of the data row.
    """
    rows = []
    with open(path, 'r', encoding='utf-8', newline='') as f:
        reader = csv.DictReader(f)
        for position, raw in enumerate(reader, start=1):
            row = {(k or '').strip().lower(): (v or '').strip() for k, v in raw.items()}
            if not row.get('title'):
                continue
            try:
                row_number = _optional_int(row.get('row')) or position
            except ValueError:
                logger.warning("Row %d has a non-numeric row column %r, using its position",
                               position, row.get('row'))
                row_number = position
            rows.append(ImportProvenance(
                row_number=row_number,
                title=row.get('title'),
                director=row.get('director') or None,
                year=row.get('year') or None,
                notes=row.get('notes') or None,
            ))
    return rows
