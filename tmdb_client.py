# -*- coding: utf-8 -*-
"""
Metadata lookup client (TMDB).

Every call is an outbound HTTP request that may fail. Transport errors,
rate-limit responses (429) and server errors (5xx) are retried a fixed
number of times with linear backoff; any other non-success status fails
immediately. After the last attempt the client raises LookupFailure and
never returns a partial payload.
"""
import logging
import time
from typing import Any, Callable, Dict, List, Optional

import requests

from models import MovieDetails
from settings import Settings, load_settings


logger = logging.getLogger(__name__)


class LookupFailure(Exception):
    """The metadata service returned a non-success status or was unreachable."""

    def __init__(self, reason: str, status_code: Optional[int] = None):
        self.reason = reason
        self.status_code = status_code
        super().__init__(reason)


def _is_retryable(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


class TMDBClient:
    """Thin TMDB v3 client returning MovieDetails models."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings or load_settings()
        self.base_url = self.settings.tmdb_base_url.rstrip('/')
        self.session = session or requests.Session()
        self._sleep = sleep
        self.headers = {
            "Authorization": f"Bearer {self.settings.tmdb_api_key}",
            "Accept": "application/json",
        }

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _request(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{endpoint}"
        attempts = max(1, self.settings.lookup_retries)
        last_reason = "no attempt made"
        last_status = None

        for attempt in range(1, attempts + 1):
            try:
                response = self.session.get(
                    url, params=params, headers=self.headers, timeout=self.settings.tmdb_timeout
                )
            except requests.exceptions.RequestException as e:
                last_reason = f"Network error: {e}"
                last_status = None
            else:
                if response.ok:
                    try:
                        return response.json()
                    except ValueError as e:
                        raise LookupFailure(
                            f"Malformed TMDB payload from {endpoint}: {e}",
                            status_code=response.status_code,
                        ) from None
                last_status = response.status_code
                last_reason = f"TMDB API error: {response.status_code}"
                if not _is_retryable(response.status_code):
                    raise LookupFailure(last_reason, status_code=last_status)

            if attempt < attempts:
                backoff = self.settings.retry_backoff * attempt
                logger.warning(
                    "Lookup %s failed (%s), retry %d/%d in %.2fs",
                    endpoint, last_reason, attempt, attempts - 1, backoff,
                )
                self._sleep(backoff)

        raise LookupFailure(last_reason, status_code=last_status)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_details(self, tmdb_id: int) -> MovieDetails:
        """Fetch movie details for an external identifier."""
        data = self._request(f"/movie/{int(tmdb_id)}")
        if not isinstance(data, dict) or not data.get('id'):
            raise LookupFailure(f"Malformed TMDB payload for movie {tmdb_id}")
        return _to_details(data)

    def get_credits(self, tmdb_id: int) -> Dict[str, Any]:
        return self._request(f"/movie/{int(tmdb_id)}/credits")

    @staticmethod
    def find_director(credits: Dict[str, Any]) -> Optional[str]:
        """First crew member whose job is Director."""
        for person in credits.get('crew', []) or []:
            if person.get('job') == 'Director' and person.get('name'):
                return person['name']
        return None

    def get_details_with_director(self, tmdb_id: int) -> MovieDetails:
        """Movie details with the director filled in from the credits."""
        details = self.get_details(tmdb_id)
        details.director = self.find_director(self.get_credits(tmdb_id))
        return details

    def search_movies(self, query: str, year: Optional[int] = None) -> List[MovieDetails]:
        """Search movies by title, optionally restricted to a release year."""
        params: Dict[str, Any] = {"query": query, "include_adult": "false"}
        if year:
            params["year"] = int(year)
        data = self._request("/search/movie", params=params)
        return [
            _to_details(item)
            for item in data.get('results', []) or []
            if item.get('id') and item.get('title')
        ]


def _to_details(data: Dict[str, Any]) -> MovieDetails:
    return MovieDetails(
        id=int(data['id']),
        title=data.get('title') or '',
        original_title=data.get('original_title') or None,
        release_date=data.get('release_date') or None,
        poster_path=data.get('poster_path'),
        imdb_id=data.get('imdb_id') or None,
    )
