# -*- coding: utf-8 -*-
"""Shared fixtures: in-memory store, fake metadata client, zero-delay settings."""
import mongomock
import pytest

from models import MovieDetails
from mongodb_client import OscarStore
from settings import Settings
from tmdb_client import LookupFailure


class FakeLookupClient:
    """In-memory stand-in for TMDBClient."""

    def __init__(self, movies):
        self.movies = {m.id: m for m in movies}
        self.failures = {}
        self.calls = []

    def get_details(self, tmdb_id):
        self.calls.append(tmdb_id)
        if tmdb_id in self.failures:
            raise self.failures[tmdb_id]
        if tmdb_id not in self.movies:
            raise LookupFailure("TMDB API error: 404", status_code=404)
        return self.movies[tmdb_id].model_copy()

    def get_details_with_director(self, tmdb_id):
        return self.get_details(tmdb_id)

    def search_movies(self, query, year=None):
        return [
            m.model_copy() for m in self.movies.values()
            if m.title.lower() == query.lower() and (year is None or m.release_year == year)
        ]


LOOKUP_MOVIES = [
    MovieDetails(id=831815, title='Rustin', release_date='2023-11-03', director='George C. Wolfe'),
    MovieDetails(id=872585, title='Oppenheimer', release_date='2023-07-19',
                 poster_path='/oppenheimer.jpg', director='Christopher Nolan'),
    MovieDetails(id=840430, title='The Holdovers', release_date='2023-10-27',
                 poster_path='/holdovers.jpg', director='Alexander Payne'),
    MovieDetails(id=346698, title='Barbie', release_date='2023-07-19',
                 poster_path='/barbie.jpg', director='Greta Gerwig'),
    MovieDetails(id=915935, title='Anatomy of a Fall', original_title='Anatomie d\'une chute',
                 release_date='2023-08-23', director='Justine Triet'),
    MovieDetails(id=600583, title='The Power of the Dog', release_date='2021-11-17',
                 director='Jane Campion'),
]


@pytest.fixture
def store():
    db = mongomock.MongoClient()['oscar_tracker_test']
    store = OscarStore(db)
    store.ensure_indexes()
    return store


@pytest.fixture
def settings():
    return Settings(
        tmdb_api_key='test-token',
        rate_limit_delay=0,
        retry_backoff=0,
        progress_every=2,
    )


@pytest.fixture
def lookup_client():
    return FakeLookupClient(LOOKUP_MOVIES)
