# -*- coding: utf-8 -*-
"""
Batch jobs and review operations

Everything that moves data between the input sources, the metadata service
and the store:

- Award archive import (categories, award-linked movies with verification,
  nominations) and bulk re-verification
- Best Picture seed import, collection sync and overview
- Collection integration of award data by external identifier
- Collection spreadsheet import, match-quality reporting and approval
- Human corrections of award-linked and collection movies

Batch jobs run sequentially in source order, wait on a RateLimiter before
each metadata lookup, poll a CancelToken between records, log progress every
``settings.progress_every`` records and always return their summary. A
failure on one record is logged and counted, never raised.
"""
import logging
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from collection_matcher import CollectionMatcher, MatchQuery
from match_quality import (
    MISMATCH_THRESHOLD, assess_match_quality, filter_assessments, summarize_assessments,
)
from models import (
    AwardData, AwardLinkedMovie, BestPictureNominee, CanonicalNomination, CollectionMovie,
    ImportProvenance, ImportStats, MatchAnalysis, NominationRecord, Severity, SyncStats,
)
from mongodb_client import DuplicateExternalId, OscarStore
from normalizers import extract_year, movie_key
from rate_limiter import CancelToken, RateLimiter
from review_status import (
    REVIEW_QUEUE_DEFAULT, ApprovalStatus, ReviewStatus, is_verified, transition,
)
from settings import Settings, load_settings
from tmdb_client import LookupFailure
from verifier import evaluate_details, verify_movie


logger = logging.getLogger(__name__)

BEST_PICTURE = 'Best Picture'


def _is_cancelled(cancel_token: Optional[CancelToken]) -> bool:
    return cancel_token is not None and cancel_token.cancelled


def _log_progress(label: str, done: int, total: int, every: int):
    if every > 0 and done % every == 0:
        logger.info("%s: %d/%d", label, done, total)


def _round_percent(part: int, total: int) -> int:
    if total <= 0:
        return 0
    return int(part / total * 100 + 0.5)


def _latest_ceremony_year(store: OscarStore, movie_id: str) -> Optional[int]:
    nominations = store.nominations_for_movie(movie_id)
    return nominations[0].ceremony_year if nominations else None


# =============================================================================
# AWARD ARCHIVE IMPORT
# =============================================================================

def import_nominations(
    records: Sequence[NominationRecord],
    store: OscarStore,
    client,
    settings: Optional[Settings] = None,
    categories: Optional[Iterable[str]] = None,
    cancel_token: Optional[CancelToken] = None,
    limiter: Optional[RateLimiter] = None,
) -> ImportStats:
    """
    Import nomination records into the store.

    Three passes over the records, each in source order:

    1. Upsert every category (with its group)
    2. Upsert every distinct referenced movie. Movies already stored are left
       untouched; new ones are verified against the metadata service first
       and stored with the resulting review status.
    3. Upsert one nomination per nominee name (one without a name when the
       record lists no nominees), linked to the record's first movie.

    Running the same batch twice creates nothing on the second run.

    Args:
        records: Nomination records in source order
        store: Target store
        client: Metadata lookup client (``get_details``)
        settings: Rate limit, threshold and progress settings
        categories: Optional category names to restrict the import to
        cancel_token: Polled between records; stops the job when set
        limiter: Scheduler for lookups (built from settings if omitted)

    Returns:
        ImportStats summary
    """
    settings = settings or load_settings()
    limiter = limiter or RateLimiter(settings.rate_limit_delay)

    if categories is not None:
        wanted = set(categories)
        records = [r for r in records if r.category in wanted]

    stats = ImportStats(total=len(records))
    logger.info("Importing %d nomination records", len(records))

    # Pass 1: categories
    category_ids: Dict[str, str] = {}
    for name in dict.fromkeys(r.category for r in records):
        category, created = store.upsert_category(name)
        category_ids[name] = category.id
        if created:
            stats.categories_created += 1

    # Pass 2: award-linked movies, first occurrence wins
    unique_movies = {}
    for record in records:
        for ref in record.movies:
            unique_movies.setdefault(movie_key(ref.tmdb_id, ref.title), (ref, record.ceremony_year))

    movie_ids: Dict[str, str] = {}
    for index, (key, (ref, ceremony_year)) in enumerate(unique_movies.items(), start=1):
        if _is_cancelled(cancel_token):
            stats.cancelled = True
            break
        try:
            existing = store.find_award_movie(key)
            if existing is not None:
                movie_ids[key] = existing.id
                stats.movies_skipped_existing += 1
                logger.debug("Skipped existing movie %s", key)
                continue

            if ref.tmdb_id:
                limiter.wait()
                stats.movies_verified += 1
            verdict = verify_movie(ref, ceremony_year, client, title_threshold=settings.title_threshold)
            status = transition(ReviewStatus.PENDING, verdict.review_status)

            movie, created = store.upsert_award_movie(AwardLinkedMovie(
                title=ref.title,
                tmdb_id=ref.tmdb_id,
                imdb_id=ref.imdb_id,
                review_status=status,
                confidence_score=verdict.confidence_score,
                verification_notes=verdict.verification_notes,
            ))
            movie_ids[key] = movie.id
            if not created:
                stats.movies_skipped_existing += 1
                continue

            stats.movies_created += 1
            if status == ReviewStatus.AUTO_VERIFIED:
                stats.movies_auto_verified += 1
            else:
                stats.movies_needs_review += 1
        except Exception as e:
            logger.exception("Failed to import movie %r: %s", ref.title, e)
            stats.errors += 1
        finally:
            _log_progress("Movies", index, len(unique_movies), settings.progress_every)

    # Pass 3: nominations
    if not stats.cancelled:
        for index, record in enumerate(records, start=1):
            if _is_cancelled(cancel_token):
                stats.cancelled = True
                break
            try:
                _import_nomination(record, store, category_ids, movie_ids, stats)
                stats.processed += 1
            except Exception as e:
                logger.exception(
                    "Failed to import nomination %s %s: %s", record.ceremony_year, record.category, e
                )
                stats.errors += 1
            _log_progress("Nominations", index, len(records), settings.progress_every)

    if stats.cancelled:
        logger.warning("Nomination import cancelled after %d records", stats.processed)
    logger.info(
        "Import complete: %d movies created (%d auto-verified, %d need review), "
        "%d existing, %d nominations created, %d skipped, %d errors",
        stats.movies_created, stats.movies_auto_verified, stats.movies_needs_review,
        stats.movies_skipped_existing, stats.nominations_created,
        stats.nominations_skipped, stats.errors,
    )
    return stats


def _import_nomination(
    record: NominationRecord,
    store: OscarStore,
    category_ids: Dict[str, str],
    movie_ids: Dict[str, str],
    stats: ImportStats,
):
    movie_id = None
    if record.movies:
        first = record.movies[0]
        movie_id = movie_ids.get(movie_key(first.tmdb_id, first.title))
        if movie_id is None:
            raise LookupError(f"movie {first.title!r} was not imported")

    for nominee_name in record.nominees or [None]:
        _, created = store.upsert_nomination(CanonicalNomination(
            ceremony_year=record.ceremony_year,
            category_id=category_ids[record.category],
            movie_id=movie_id,
            nominee_name=nominee_name,
            is_winner=record.is_winner,
        ))
        if created:
            stats.nominations_created += 1
        else:
            stats.nominations_skipped += 1
            logger.debug("Skipped existing nomination %s %s %s",
                         record.ceremony_year, record.category, nominee_name)


def reverify_movies(
    store: OscarStore,
    client,
    settings: Optional[Settings] = None,
    statuses: Sequence[ReviewStatus] = (ReviewStatus.PENDING,),
    cancel_token: Optional[CancelToken] = None,
    limiter: Optional[RateLimiter] = None,
) -> ImportStats:
    """
    Re-run verification over stored award movies in ``statuses``.

    Movies outside PENDING are moved back to PENDING before the new verdict is
    applied. Movies without any nomination have no ceremony year to check
    against and are counted as errors.
    """
    settings = settings or load_settings()
    limiter = limiter or RateLimiter(settings.rate_limit_delay)

    movies = store.list_award_movies(statuses)
    stats = ImportStats(total=len(movies))
    logger.info("Re-verifying %d award movies", len(movies))

    for index, movie in enumerate(movies, start=1):
        if _is_cancelled(cancel_token):
            stats.cancelled = True
            logger.warning("Re-verification cancelled after %d movies", stats.processed)
            break
        try:
            ceremony_year = _latest_ceremony_year(store, movie.id)
            if ceremony_year is None:
                logger.warning("No nominations for %r, cannot re-verify", movie.title)
                stats.errors += 1
                continue

            if movie.tmdb_id:
                limiter.wait()
                stats.movies_verified += 1
            verdict = verify_movie(movie, ceremony_year, client, title_threshold=settings.title_threshold)

            if movie.review_status != ReviewStatus.PENDING:
                store.set_review(movie.id, ReviewStatus.PENDING)
            store.set_review(
                movie.id,
                verdict.review_status,
                confidence_score=verdict.confidence_score,
                verification_notes=verdict.verification_notes,
            )
            stats.processed += 1
            if verdict.review_status == ReviewStatus.AUTO_VERIFIED:
                stats.movies_auto_verified += 1
            else:
                stats.movies_needs_review += 1
        except Exception as e:
            logger.exception("Failed to re-verify %r: %s", movie.title, e)
            stats.errors += 1
        finally:
            _log_progress("Re-verified", index, len(movies), settings.progress_every)

    logger.info(
        "Re-verification complete: %d auto-verified, %d need review, %d errors",
        stats.movies_auto_verified, stats.movies_needs_review, stats.errors,
    )
    return stats


# =============================================================================
# REVIEW QUEUE
# =============================================================================

def review_queue(
    store: OscarStore,
    statuses: Optional[Sequence[ReviewStatus]] = None,
) -> List[Dict[str, Any]]:
    """
    Award movies awaiting a human, needs_manual_review first.

    Each entry carries the movie's ceremony years (most recent first) and the
    names of the categories it was nominated in.
    """
    movies = store.list_award_movies(statuses or REVIEW_QUEUE_DEFAULT)
    movies.sort(key=lambda m: m.review_status != ReviewStatus.NEEDS_MANUAL_REVIEW)
    categories = store.categories_by_id()

    queue = []
    for movie in movies:
        nominations = store.nominations_for_movie(movie.id)
        entry = movie.model_dump(mode='json')
        entry['ceremony_years'] = sorted({n.ceremony_year for n in nominations}, reverse=True)
        entry['categories'] = sorted({
            categories[n.category_id].name for n in nominations if n.category_id in categories
        })
        queue.append(entry)
    return queue


def review_stats(store: OscarStore) -> Dict[str, int]:
    counts = {status.value: store.count_award_movies(status) for status in ReviewStatus}
    total = store.count_award_movies()
    verified = sum(n for status, n in counts.items() if is_verified(status))
    needs_action = counts[ReviewStatus.NEEDS_MANUAL_REVIEW.value] + counts[ReviewStatus.PENDING.value]
    return {
        'total': total,
        **counts,
        'verified': verified,
        'needs_action': needs_action,
        'completion_percentage': _round_percent(verified, total),
    }


def mark_manually_reviewed(
    store: OscarStore,
    movie_id: str,
    reviewer: str,
    notes: Optional[str] = None,
) -> AwardLinkedMovie:
    """Record a human sign-off on an award movie's current identifier."""
    current = store.get_award_movie(movie_id)
    movie = store.set_review(
        movie_id,
        ReviewStatus.MANUALLY_REVIEWED,
        verification_notes=notes if notes is not None else current.verification_notes,
        reviewed_by=reviewer,
    )
    logger.info("Award movie %r manually reviewed by %s", movie.title, reviewer)
    return movie


def correct_award_movie(
    store: OscarStore,
    client,
    movie_id: str,
    tmdb_id: int,
    ceremony_year: Optional[int] = None,
    settings: Optional[Settings] = None,
) -> AwardLinkedMovie:
    """
    Point an award movie at a reviewer-supplied identifier and re-verify it.

    The movie is reset to PENDING first, whatever its previous status. The
    ceremony year defaults to the movie's most recent nomination; without
    one the movie is left PENDING.

    Raises:
        NotFound: unknown movie
        DuplicateExternalId: identifier already used by another award movie
        LookupFailure: the new identifier could not be fetched
    """
    settings = settings or load_settings()
    current = store.get_award_movie(movie_id)
    details = client.get_details(tmdb_id)

    movie = store.relink_award_movie(movie_id, details.id, current.title, details.imdb_id)
    logger.info("Award movie %r relinked to TMDB %s", movie.title, details.id)

    ceremony_year = ceremony_year or _latest_ceremony_year(store, movie_id)
    if ceremony_year is None:
        return movie

    verdict = evaluate_details(movie, ceremony_year, details, title_threshold=settings.title_threshold)
    return store.set_review(
        movie_id,
        verdict.review_status,
        confidence_score=verdict.confidence_score,
        verification_notes=verdict.verification_notes,
    )


# =============================================================================
# BEST PICTURE
# =============================================================================

def import_best_picture_nominees(
    nominees: Sequence[BestPictureNominee],
    store: OscarStore,
    force_reimport: bool = False,
) -> Dict[str, int]:
    """Load the Best Picture seed. ``force_reimport`` clears existing rows first."""
    cleared = store.clear_best_picture_nominees() if force_reimport else 0
    imported = skipped = 0
    for nominee in nominees:
        _, created = store.upsert_best_picture_nominee(nominee)
        if created:
            imported += 1
        else:
            skipped += 1
    logger.info("Best Picture seed: %d imported, %d skipped, %d cleared", imported, skipped, cleared)
    return {'imported': imported, 'skipped': skipped, 'cleared': cleared}


def sync_best_picture(
    store: OscarStore,
    user_id: Optional[str] = None,
    cancel_token: Optional[CancelToken] = None,
) -> SyncStats:
    """Attach a Best Picture award row to every nominee found in the collection."""
    matcher = CollectionMatcher(store.list_collection_movies(user_id))
    nominees = store.list_best_picture_nominees()
    stats = SyncStats()

    for nominee in nominees:
        if _is_cancelled(cancel_token):
            stats.cancelled = True
            break
        stats.processed += 1
        try:
            match = matcher.match(MatchQuery.from_best_picture(nominee))
            if not match.matched:
                stats.not_in_collection += 1
                continue

            outcome = store.upsert_award_data(AwardData(
                movie_id=match.movie.id,
                ceremony_year=nominee.ceremony_year,
                category=BEST_PICTURE,
                nomination_type='won' if nominee.is_winner else 'nominated',
            ))
            stats.synced += 1
            if outcome == 'created':
                stats.created += 1
            elif outcome == 'updated':
                stats.updated += 1
            logger.debug("%s (%s) -> %r via %s", nominee.movie_title, nominee.ceremony_year,
                         match.movie.title, match.match_type)
        except Exception as e:
            logger.exception("Failed to sync %r: %s", nominee.movie_title, e)
            stats.errors += 1

    logger.info(
        "Best Picture sync: %d synced (%d created, %d updated), %d not in collection",
        stats.synced, stats.created, stats.updated, stats.not_in_collection,
    )
    return stats


def best_picture_overview(
    store: OscarStore,
    client=None,
    user_id: Optional[str] = None,
    ceremony_year: Optional[int] = None,
    winner_only: bool = False,
) -> List[Dict[str, Any]]:
    """
    Best Picture nominees with their collection status.

    Nominees not in the collection get the poster and title of their
    external identifier from the metadata service, when one is known.
    """
    matcher = CollectionMatcher(store.list_collection_movies(user_id))
    overview = []
    for nominee in store.list_best_picture_nominees(ceremony_year, winner_only):
        match = matcher.match(MatchQuery.from_best_picture(nominee))
        entry = {
            'id': nominee.id,
            'ceremony_year': nominee.ceremony_year,
            'movie_title': nominee.movie_title,
            'release_year': nominee.release_year,
            'is_winner': nominee.is_winner,
            'tmdb_id': nominee.tmdb_id,
            'in_collection': match.matched,
            'match_confidence': match.confidence,
            'match_type': match.match_type,
            'collection_id': None,
            'title': nominee.movie_title,
            'poster_path': None,
        }
        if match.matched:
            entry['collection_id'] = match.movie.id
            entry['title'] = match.movie.title
            entry['poster_path'] = match.movie.poster_path
        elif nominee.tmdb_id and client is not None:
            try:
                details = client.get_details(nominee.tmdb_id)
                entry['title'] = details.title
                entry['poster_path'] = details.poster_path
            except LookupFailure as e:
                logger.warning("No fallback metadata for %r: %s", nominee.movie_title, e)
        overview.append(entry)
    return overview


# =============================================================================
# COLLECTION INTEGRATION
# =============================================================================

def integrate_collection(store: OscarStore, user_id: Optional[str] = None) -> SyncStats:
    """
    Copy award nominations onto collection movies sharing an external identifier.

    One award row per (ceremony_year, category); a category counts as won
    when any nomination in it won.
    """
    categories = store.categories_by_id()
    stats = SyncStats()

    for award_movie in store.list_award_movies():
        if not award_movie.tmdb_id:
            continue
        stats.processed += 1
        try:
            collection_movie = store.find_collection_movie_by_tmdb(award_movie.tmdb_id, user_id)
            if collection_movie is None:
                stats.not_in_collection += 1
                continue

            grouped: Dict[Tuple[int, str], bool] = defaultdict(bool)
            for nomination in store.nominations_for_movie(award_movie.id):
                category = categories.get(nomination.category_id)
                if category is None:
                    continue
                key = (nomination.ceremony_year, category.name)
                grouped[key] = grouped[key] or nomination.is_winner

            for (ceremony_year, category_name), won in grouped.items():
                outcome = store.upsert_award_data(AwardData(
                    movie_id=collection_movie.id,
                    ceremony_year=ceremony_year,
                    category=category_name,
                    nomination_type='won' if won else 'nominated',
                ))
                if outcome == 'created':
                    stats.created += 1
                elif outcome == 'updated':
                    stats.updated += 1
            stats.synced += 1
        except Exception as e:
            logger.exception("Failed to integrate %r: %s", award_movie.title, e)
            stats.errors += 1

    logger.info(
        "Collection integration: %d movies linked, %d award rows created, %d updated",
        stats.synced, stats.created, stats.updated,
    )
    return stats


# =============================================================================
# COLLECTION IMPORT AND MATCH QUALITY
# =============================================================================

def import_collection_rows(
    rows: Sequence[ImportProvenance],
    store: OscarStore,
    client,
    user_id: Optional[str] = None,
    settings: Optional[Settings] = None,
    cancel_token: Optional[CancelToken] = None,
    limiter: Optional[RateLimiter] = None,
) -> ImportStats:
    """
    Import spreadsheet rows into a collection.

    Each row is searched by title (and year, when the row has one), the first
    result becomes the collection movie, and its match quality is recorded.
    Rows without any search result are counted as needing review.
    """
    settings = settings or load_settings()
    limiter = limiter or RateLimiter(settings.rate_limit_delay)
    stats = ImportStats(total=len(rows))

    for index, row in enumerate(rows, start=1):
        if _is_cancelled(cancel_token):
            stats.cancelled = True
            break
        try:
            year = extract_year(row.year)
            limiter.wait()
            results = client.search_movies(row.title, year=year)
            if not results and year is not None:
                limiter.wait()
                results = client.search_movies(row.title)
            if not results:
                logger.warning("Row %d: no metadata match for %r", row.row_number, row.title)
                stats.movies_needs_review += 1
                continue

            limiter.wait()
            details = client.get_details_with_director(results[0].id)
            movie, created = store.add_collection_movie(CollectionMovie(
                user_id=user_id,
                tmdb_id=details.id,
                title=details.title,
                original_title=details.original_title,
                director=details.director,
                release_date=details.release_date,
                poster_path=details.poster_path,
                provenance=row,
            ))
            if not created:
                stats.movies_skipped_existing += 1
                continue
            stats.movies_created += 1

            analysis = assess_match_quality(movie)
            if analysis is not None:
                store.save_match_analysis(analysis)
        except LookupFailure as e:
            logger.warning("Row %d: lookup failed for %r: %s", row.row_number, row.title, e)
            stats.errors += 1
        except Exception as e:
            logger.exception("Row %d: failed to import %r: %s", row.row_number, row.title, e)
            stats.errors += 1
        finally:
            stats.processed += 1
            _log_progress("Rows", index, len(rows), settings.progress_every)

    logger.info(
        "Collection import: %d created, %d existing, %d unmatched, %d errors",
        stats.movies_created, stats.movies_skipped_existing, stats.movies_needs_review, stats.errors,
    )
    return stats


def correct_collection_movie(
    store: OscarStore,
    client,
    movie_id: str,
    tmdb_id: int,
) -> Tuple[CollectionMovie, Optional[MatchAnalysis]]:
    """
    Re-point a collection movie at another metadata record.

    The movie goes back to pending approval and, when it came from a
    spreadsheet, its match analysis is recomputed against the new record.

    Raises:
        NotFound: unknown movie
        DuplicateExternalId: identifier already used by another movie in the collection
        LookupFailure: the new identifier could not be fetched
    """
    movie = store.get_collection_movie(movie_id)
    other = store.find_collection_movie_by_tmdb(tmdb_id, movie.user_id)
    if other is not None and other.id != movie.id:
        raise DuplicateExternalId(f"TMDB id {tmdb_id} is already used by {other.title!r}")

    details = client.get_details_with_director(tmdb_id)
    updated = store.update_collection_movie(movie_id, {
        'tmdb_id': details.id,
        'title': details.title,
        'original_title': details.original_title,
        'director': details.director,
        'release_date': details.release_date,
        'poster_path': details.poster_path,
        'approval_status': ApprovalStatus.PENDING,
        'approved_by': None,
        'approved_at': None,
    })

    analysis = assess_match_quality(updated)
    if analysis is not None:
        analysis = store.save_match_analysis(analysis)
    logger.info("Movie %s corrected to TMDB %s (%r)", movie_id, details.id, details.title)
    return updated, analysis


def match_quality_report(
    store: OscarStore,
    threshold: int = MISMATCH_THRESHOLD,
    severity: Optional[Severity] = None,
    user_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Spreadsheet-imported movies whose match confidence is at or below
    ``threshold``, lowest confidence first, plus a severity summary over all
    imported movies.
    """
    movies = {m.id: m for m in store.list_collection_movies(user_id, imported_only=True)}
    assessments = [a for a in (assess_match_quality(m) for m in movies.values()) if a is not None]
    low_confidence = filter_assessments(assessments, threshold=threshold, severity=severity)

    return {
        'movies': [
            {'movie': movies[a.movie_id].model_dump(mode='json'), 'analysis': a.model_dump(mode='json')}
            for a in low_confidence
        ],
        'summary': summarize_assessments(assessments, low_confidence),
    }


# =============================================================================
# APPROVAL
# =============================================================================

def approve_movies(store: OscarStore, movie_ids: Sequence[str], approved_by: str) -> int:
    count = store.approve_movies(movie_ids, approved_by)
    logger.info("%d movies approved by %s", count, approved_by)
    return count


def remove_movie(store: OscarStore, movie_id: str) -> CollectionMovie:
    return store.update_collection_movie(movie_id, {'approval_status': ApprovalStatus.REMOVED})


def approval_stats(store: OscarStore, user_id: Optional[str] = None) -> Dict[str, int]:
    not_removed = {'$ne': ApprovalStatus.REMOVED.value}
    total = store.count_collection_movies(user_id, approval_status=not_removed)
    approved = store.count_collection_movies(user_id, approval_status=ApprovalStatus.APPROVED)
    return {
        'total': total,
        'pending': store.count_collection_movies(user_id, approval_status=ApprovalStatus.PENDING),
        'approved': approved,
        'with_import': store.count_collection_movies(
            user_id, approval_status=not_removed, provenance={'$ne': None}
        ),
        'approval_rate': _round_percent(approved, total),
    }
