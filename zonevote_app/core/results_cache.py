"""Read-through cache for the results views.

Tabulation itself never reads this cache; it is always derived from the vote
rows. The views own the cache, and every ballot write schedules an
invalidation for after its transaction commits.
"""

from __future__ import annotations

from django.conf import settings
from django.core.cache import cache
from django.db import transaction

from core.elections_tally import tally_election, zone_turnout
from core.models import Election


def _results_cache_key(election_id: int, *, real_winners_only: bool) -> str:
    variant = "real" if real_winners_only else "all"
    return f"election_results_{election_id}_{variant}"


def _turnout_cache_key(election_id: int) -> str:
    return f"election_turnout_{election_id}"


def _election_cache_keys(election_id: int) -> list[str]:
    return [
        _results_cache_key(election_id, real_winners_only=False),
        _results_cache_key(election_id, real_winners_only=True),
        _turnout_cache_key(election_id),
    ]


def cached_election_results(election: Election, *, real_winners_only: bool = False) -> dict[str, object]:
    return cache.get_or_set(
        _results_cache_key(election.pk, real_winners_only=real_winners_only),
        lambda: tally_election(election=election, real_winners_only=real_winners_only).as_dict(),
        timeout=settings.ELECTION_RESULTS_CACHE_TTL_SECONDS,
    )


def cached_zone_turnout(election: Election) -> dict[str, object]:
    return cache.get_or_set(
        _turnout_cache_key(election.pk),
        lambda: zone_turnout(election=election).as_dict(),
        timeout=settings.ELECTION_RESULTS_CACHE_TTL_SECONDS,
    )


def invalidate_election_results(election_id: int) -> None:
    cache.delete_many(_election_cache_keys(election_id))


def invalidate_election_results_on_commit(election_id: int) -> None:
    transaction.on_commit(lambda: invalidate_election_results(election_id))
