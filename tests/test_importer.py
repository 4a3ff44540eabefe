# -*- coding: utf-8 -*-
import pytest

from importer import (
    approval_stats, approve_movies, best_picture_overview, correct_award_movie,
    correct_collection_movie, import_best_picture_nominees, import_collection_rows,
    import_nominations, integrate_collection, mark_manually_reviewed, match_quality_report,
    remove_movie, reverify_movies, review_queue, review_stats, sync_best_picture,
)
from models import (
    AwardLinkedMovie, BestPictureNominee, CollectionMovie, ImportProvenance, MovieRef,
    NominationRecord, Severity,
)
from mongodb_client import DuplicateExternalId
from rate_limiter import CancelToken, RateLimiter
from review_status import ApprovalStatus, ReviewStatus
from tmdb_client import LookupFailure


def records():
    return [
        NominationRecord(ceremony_year=2024, category='Best Picture',
                         movies=[MovieRef(title='Oppenheimer', tmdb_id=872585)], is_winner=True),
        NominationRecord(ceremony_year=2024, category='Best Actor', nominees=['Colman Domingo'],
                         movies=[MovieRef(title='Rustin', tmdb_id=831815)]),
        NominationRecord(ceremony_year=2024, category='Best Actor', nominees=['Cillian Murphy'],
                         movies=[MovieRef(title='Oppenheimer', tmdb_id=872585)], is_winner=True),
        NominationRecord(ceremony_year=2024, category='Best Picture',
                         movies=[MovieRef(title='Past Lives')]),
        NominationRecord(ceremony_year=2024, category='Best Original Screenplay',
                         nominees=['Celine Song'], movies=[MovieRef(title='Past Lives')]),
    ]


def row_counts(store):
    return (
        store.categories.count_documents({}),
        store.count_award_movies(),
        store.count_nominations(),
    )


def test_import_creates_verified_movies_and_nominations(store, lookup_client, settings):
    stats = import_nominations(records(), store, lookup_client, settings)

    assert stats.total == 5
    assert stats.processed == 5
    assert stats.categories_created == 3
    assert stats.movies_created == 3
    assert stats.movies_verified == 2
    assert stats.movies_auto_verified == 2
    assert stats.movies_needs_review == 1
    assert stats.nominations_created == 5
    assert stats.errors == 0
    assert not stats.cancelled

    past_lives = store.find_award_movie('title:past lives')
    assert past_lives.review_status == ReviewStatus.NEEDS_MANUAL_REVIEW
    assert past_lives.confidence_score == 0
    assert store.find_award_movie('tmdb:831815').review_status == ReviewStatus.AUTO_VERIFIED


def test_second_run_creates_nothing(store, lookup_client, settings):
    import_nominations(records(), store, lookup_client, settings)
    counts = row_counts(store)
    lookups = len(lookup_client.calls)

    stats = import_nominations(records(), store, lookup_client, settings)

    assert row_counts(store) == counts
    assert stats.movies_created == 0
    assert stats.movies_skipped_existing == 3
    assert stats.nominations_created == 0
    assert stats.nominations_skipped == 5
    assert len(lookup_client.calls) == lookups


def test_existing_review_status_is_preserved(store, lookup_client, settings):
    import_nominations(records(), store, lookup_client, settings)
    past_lives = store.find_award_movie('title:past lives')
    mark_manually_reviewed(store, past_lives.id, 'ana')

    import_nominations(records(), store, lookup_client, settings)

    assert store.get_award_movie(past_lives.id).review_status == ReviewStatus.MANUALLY_REVIEWED


def test_lookup_failure_does_not_abort_batch(store, lookup_client, settings):
    lookup_client.failures[872585] = LookupFailure("TMDB API error: 503", status_code=503)

    stats = import_nominations(records(), store, lookup_client, settings)

    assert stats.errors == 0
    assert stats.movies_created == 3
    oppenheimer = store.find_award_movie('tmdb:872585')
    assert oppenheimer.review_status == ReviewStatus.NEEDS_MANUAL_REVIEW
    assert oppenheimer.verification_notes == "Lookup failed: TMDB API error: 503"


def test_unexpected_error_is_counted(store, lookup_client, settings):
    lookup_client.failures[831815] = RuntimeError("unexpected")

    stats = import_nominations(records(), store, lookup_client, settings)

    # Rustin itself and its one nomination fail; everything else lands
    assert stats.errors == 2
    assert stats.movies_created == 2
    assert stats.nominations_created == 4


def test_category_filter(store, lookup_client, settings):
    stats = import_nominations(records(), store, lookup_client, settings, categories=['Best Actor'])

    assert stats.total == 2
    assert stats.categories_created == 1
    assert stats.movies_created == 2
    assert stats.nominations_created == 2


def test_nomination_without_nominees_has_no_name(store, lookup_client, settings):
    import_nominations(records()[:1], store, lookup_client, settings)
    [nomination] = store.nominations_for_movie(store.find_award_movie('tmdb:872585').id)

    assert nomination.nominee_name is None
    assert nomination.is_winner


def test_cancelled_import_stops_between_records(store, lookup_client, settings):
    token = CancelToken()
    token.cancel()

    stats = import_nominations(records(), store, lookup_client, settings, cancel_token=token)

    assert stats.cancelled
    assert stats.movies_created == 0
    assert stats.nominations_created == 0
    assert lookup_client.calls == []


def test_lookups_are_rate_limited(store, lookup_client, settings):
    sleeps = []
    clock_time = [100.0]
    limiter = RateLimiter(0.25, clock=lambda: clock_time[0], sleep=sleeps.append)

    import_nominations(records(), store, lookup_client, settings, limiter=limiter)

    # two lookups, the second one waits for the full delay
    assert sleeps == [0.25]


# ----------------------------------------------------------------------------
# Review queue and corrections
# ----------------------------------------------------------------------------

def test_review_queue_and_stats(store, lookup_client, settings):
    import_nominations(records(), store, lookup_client, settings)
    store.upsert_award_movie(AwardLinkedMovie(title='Maestro', tmdb_id=523607))

    queue = review_queue(store)

    assert [m['title'] for m in queue] == ['Past Lives', 'Maestro']
    assert queue[0]['review_status'] == 'needs_manual_review'
    assert queue[0]['ceremony_years'] == [2024]
    assert queue[0]['categories'] == ['Best Original Screenplay', 'Best Picture']

    stats = review_stats(store)
    assert stats['total'] == 4
    assert stats['auto_verified'] == 2
    assert stats['needs_manual_review'] == 1
    assert stats['pending'] == 1
    assert stats['verified'] == 2
    assert stats['needs_action'] == 2
    assert stats['completion_percentage'] == 50


def test_review_stats_empty_store(store):
    assert review_stats(store)['completion_percentage'] == 0


def test_correct_award_movie_reverifies(store, lookup_client, settings):
    import_nominations(records(), store, lookup_client, settings)
    lookup_client.movies[999] = lookup_client.movies[840430].model_copy(update={'id': 999, 'title': 'Past Lives'})
    past_lives = store.find_award_movie('title:past lives')
    mark_manually_reviewed(store, past_lives.id, 'ana')

    corrected = correct_award_movie(store, lookup_client, past_lives.id, 999, settings=settings)

    assert corrected.tmdb_id == 999
    assert corrected.review_status == ReviewStatus.AUTO_VERIFIED
    assert corrected.reviewed_by is None
    assert store.find_award_movie('tmdb:999').id == past_lives.id


def test_reimport_after_correction_finds_relinked_movie(store, lookup_client, settings):
    untracked = [NominationRecord(ceremony_year=2024, category='Best Picture',
                                  movies=[MovieRef(title='Oppenheimer')])]
    import_nominations(untracked, store, lookup_client, settings)
    movie = store.find_award_movie('title:oppenheimer')
    correct_award_movie(store, lookup_client, movie.id, 872585, settings=settings)

    stats = import_nominations(untracked, store, lookup_client, settings)

    assert (store.count_award_movies(), store.count_nominations()) == (1, 1)
    assert stats.movies_created == 0
    assert stats.movies_skipped_existing == 1
    assert stats.nominations_skipped == 1
    assert store.find_award_movie('title:oppenheimer').tmdb_id == 872585


def test_correct_award_movie_to_unrelated_record_needs_review(store, lookup_client, settings):
    import_nominations(records(), store, lookup_client, settings)
    rustin = store.find_award_movie('tmdb:831815')

    corrected = correct_award_movie(store, lookup_client, rustin.id, 600583, settings=settings)

    assert corrected.review_status == ReviewStatus.NEEDS_MANUAL_REVIEW
    assert 'Title mismatch' in corrected.verification_notes


def test_correct_award_movie_refuses_duplicate(store, lookup_client, settings):
    import_nominations(records(), store, lookup_client, settings)
    rustin = store.find_award_movie('tmdb:831815')

    with pytest.raises(DuplicateExternalId):
        correct_award_movie(store, lookup_client, rustin.id, 872585, settings=settings)


def test_reverify_moves_statuses_through_pending(store, lookup_client, settings):
    import_nominations(records(), store, lookup_client, settings)
    oppenheimer = store.find_award_movie('tmdb:872585')
    lookup_client.failures[872585] = LookupFailure("TMDB API error: 500", status_code=500)

    stats = reverify_movies(store, lookup_client, settings,
                            statuses=[ReviewStatus.AUTO_VERIFIED, ReviewStatus.NEEDS_MANUAL_REVIEW])

    assert stats.total == 3
    assert stats.processed == 3
    assert stats.movies_auto_verified == 1
    assert stats.movies_needs_review == 2
    assert store.get_award_movie(oppenheimer.id).review_status == ReviewStatus.NEEDS_MANUAL_REVIEW


def test_reverify_without_nominations_is_an_error(store, lookup_client, settings):
    store.upsert_award_movie(AwardLinkedMovie(title='Maestro', tmdb_id=523607))

    stats = reverify_movies(store, lookup_client, settings)

    assert stats.errors == 1
    assert stats.processed == 0


# ----------------------------------------------------------------------------
# Best Picture and collection integration
# ----------------------------------------------------------------------------

SEED = [
    BestPictureNominee(ceremony_year=2024, movie_title='Oppenheimer', release_year=2023,
                       is_winner=True, tmdb_id=872585),
    BestPictureNominee(ceremony_year=2024, movie_title='Barbie', release_year=2023, tmdb_id=346698),
    BestPictureNominee(ceremony_year=2024, movie_title='The Holdovers', release_year=2023),
    BestPictureNominee(ceremony_year=2024, movie_title='Past Lives', release_year=2023),
]


def add_collection(store):
    oppenheimer, _ = store.add_collection_movie(CollectionMovie(
        tmdb_id=872585, title='Oppenheimer', release_date='2023-07-19', poster_path='/o.jpg'))
    holdovers, _ = store.add_collection_movie(CollectionMovie(
        tmdb_id=840430, title='The Holdovers', release_date='2023-10-27'))
    return oppenheimer, holdovers


def test_best_picture_seed_import(store):
    assert import_best_picture_nominees(SEED, store) == {'imported': 4, 'skipped': 0, 'cleared': 0}
    assert import_best_picture_nominees(SEED, store) == {'imported': 0, 'skipped': 4, 'cleared': 0}
    assert import_best_picture_nominees(SEED[:2], store, force_reimport=True) == {
        'imported': 2, 'skipped': 0, 'cleared': 4,
    }


def test_best_picture_sync(store):
    import_best_picture_nominees(SEED, store)
    oppenheimer, holdovers = add_collection(store)

    stats = sync_best_picture(store)

    assert stats.processed == 4
    assert stats.synced == 2
    assert stats.created == 2
    assert stats.not_in_collection == 2
    assert store.award_data_for_movie(oppenheimer.id)[0].nomination_type == 'won'
    assert store.award_data_for_movie(holdovers.id)[0].nomination_type == 'nominated'

    again = sync_best_picture(store)
    assert again.created == 0 and again.updated == 0 and again.synced == 2


def test_best_picture_overview_fallback(store, lookup_client):
    import_best_picture_nominees(SEED, store)
    add_collection(store)

    overview = {n['movie_title']: n for n in best_picture_overview(store, lookup_client)}

    assert overview['Oppenheimer']['in_collection']
    assert overview['Oppenheimer']['match_type'] == 'tmdb_id'
    assert overview['The Holdovers']['match_confidence'] == 95
    assert not overview['Barbie']['in_collection']
    assert overview['Barbie']['poster_path'] == '/barbie.jpg'
    assert overview['Past Lives']['poster_path'] is None
    assert overview['Past Lives']['match_type'] == 'no_match'


def test_integrate_collection(store, lookup_client, settings):
    import_nominations(records(), store, lookup_client, settings)
    oppenheimer, _ = add_collection(store)

    stats = integrate_collection(store)

    assert stats.processed == 2
    assert stats.synced == 1
    assert stats.not_in_collection == 1
    rows = {(r.category, r.nomination_type) for r in store.award_data_for_movie(oppenheimer.id)}
    assert rows == {('Best Picture', 'won'), ('Best Actor', 'won')}
    assert integrate_collection(store).created == 0


# ----------------------------------------------------------------------------
# Collection import, corrections and approval
# ----------------------------------------------------------------------------

def test_import_collection_rows(store, lookup_client, settings):
    rows = [
        ImportProvenance(row_number=1, title='The Holdovers', director='Alexander Payne', year='2023'),
        ImportProvenance(row_number=2, title='Barbie', director='Greta Gerwig', year='2019'),
        ImportProvenance(row_number=3, title='Unknown Film', year='2023'),
        ImportProvenance(row_number=4, title='The Holdovers', year='2023'),
    ]

    stats = import_collection_rows(rows, store, lookup_client, settings=settings)

    assert stats.movies_created == 2
    assert stats.movies_needs_review == 1
    assert stats.movies_skipped_existing == 1
    barbie = store.find_collection_movie_by_tmdb(346698)
    assert barbie.provenance.row_number == 2
    assert store.get_match_analysis(barbie.id).year_difference == 4


def test_correct_collection_movie_recomputes_analysis(store, lookup_client):
    movie, _ = store.add_collection_movie(CollectionMovie(
        tmdb_id=346698, title='Barbie', release_date='2023-07-19', director='Greta Gerwig',
        approval_status=ApprovalStatus.APPROVED,
        provenance=ImportProvenance(row_number=7, title='The Hold Overs',
                                    director='Alexander Payne', year='2023'),
    ))

    updated, analysis = correct_collection_movie(store, lookup_client, movie.id, 840430)

    assert updated.tmdb_id == 840430
    assert updated.title == 'The Holdovers'
    assert updated.approval_status == ApprovalStatus.PENDING
    assert analysis.confidence_score == 100
    assert analysis.severity == Severity.LOW
    assert store.get_match_analysis(movie.id).confidence_score == 100


def test_correct_collection_movie_refuses_used_identifier(store, lookup_client):
    first, _ = store.add_collection_movie(CollectionMovie(tmdb_id=1, title='Barbie'))
    store.add_collection_movie(CollectionMovie(tmdb_id=840430, title='The Holdovers'))

    with pytest.raises(DuplicateExternalId):
        correct_collection_movie(store, lookup_client, first.id, 840430)


def test_match_quality_report(store):
    good, _ = store.add_collection_movie(CollectionMovie(
        tmdb_id=1, title='Barbie', release_date='2023-07-19', director='Greta Gerwig',
        provenance=ImportProvenance(row_number=1, title='Barbie', director='Greta Gerwig', year='2023'),
    ))
    bad, _ = store.add_collection_movie(CollectionMovie(
        tmdb_id=2, title='Oppenheimer', release_date='2023-07-19',
        provenance=ImportProvenance(row_number=2, title='Barbie', director='Greta Gerwig', year='1990'),
    ))
    store.add_collection_movie(CollectionMovie(tmdb_id=3, title='Not Imported'))

    report = match_quality_report(store)

    assert [m['movie']['id'] for m in report['movies']] == [bad.id]
    assert report['movies'][0]['analysis']['severity'] == 'high'
    assert report['summary'] == {'total': 2, 'low_confidence': 1, 'high': 1, 'medium': 0, 'low': 1}
    assert match_quality_report(store, threshold=100)['summary']['low_confidence'] == 2


def test_approval_flow(store):
    a, _ = store.add_collection_movie(CollectionMovie(
        tmdb_id=1, title='Barbie', provenance=ImportProvenance(row_number=1, title='Barbie')))
    b, _ = store.add_collection_movie(CollectionMovie(tmdb_id=2, title='Maestro'))
    c, _ = store.add_collection_movie(CollectionMovie(tmdb_id=3, title='Tar'))

    assert approve_movies(store, [a.id, b.id], 'ana') == 2
    assert remove_movie(store, c.id).approval_status == ApprovalStatus.REMOVED

    assert approval_stats(store) == {
        'total': 2, 'pending': 0, 'approved': 2, 'with_import': 1, 'approval_rate': 100,
    }
