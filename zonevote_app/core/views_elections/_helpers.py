"""Shared private helpers used across election view sub-modules."""

from django.http import Http404

from core.elections_errors import ElectionUnavailableError
from core.elections_tally import current_election_for_type
from core.models import Election, ElectionType, Voter


def _require_election_type(election_type: str) -> str:
    if election_type not in ElectionType.values:
        raise Http404
    return election_type


def _get_current_election(election_type: str) -> Election:
    """Most recent non-draft election of the type, or 404."""
    try:
        return current_election_for_type(_require_election_type(election_type))
    except ElectionUnavailableError as exc:
        raise Http404 from exc


def _get_session_voter(voter_id: str) -> Voter | None:
    if not voter_id:
        return None
    return Voter.objects.filter(voter_id=voter_id).first()


def _zone_payload(zone) -> dict[str, object]:
    return {
        "id": zone.pk,
        "code": zone.code,
        "name": zone.name,
        "nameLocal": zone.name_local,
        "seats": zone.seats,
    }
