"""Online voting: ballot page data and ballot submission."""

import json
import random

from django.conf import settings
from django.http import JsonResponse
from django.views.decorators.http import require_GET, require_POST

from core.elections_errors import ElectionError, MalformedBallotError, NoZoneAssignedError
from core.elections_nota import nota_marker_for_zone
from core.elections_services import active_election_for_type, submit_ballot
from core.models import BallotClaim, Candidate, Vote
from core.rate_limit import allow_request
from core.views_elections._helpers import _get_session_voter, _require_election_type, _zone_payload
from core.views_utils import (
    election_error_response,
    error_response,
    get_voter_id,
    parse_json_body,
    request_provenance,
)


def _parse_ballot_payload(request) -> dict[str, object]:
    data = parse_json_body(request)
    if "votes" not in data:
        if data:
            raise MalformedBallotError("votes is required.")
        return {}
    ballot = data["votes"]
    if isinstance(ballot, str):
        # Form posts carry the votes as a JSON string.
        try:
            ballot = json.loads(ballot or "{}")
        except json.JSONDecodeError as exc:
            raise MalformedBallotError("votes must be a JSON object.") from exc
    if ballot is None:
        ballot = {}
    if not isinstance(ballot, dict):
        raise MalformedBallotError("votes must map zone ids to lists of selections.")
    return ballot


def _authentication_required() -> JsonResponse:
    return error_response("Authentication required.", kind="AuthenticationRequired", status=403)


def _voter_not_found() -> JsonResponse:
    return error_response("No voter record matches this session.", kind="VoterNotFound", status=404)


@require_POST
def election_vote_submit(request, election_type: str):
    _require_election_type(election_type)

    voter_id = get_voter_id(request)
    if not voter_id:
        return _authentication_required()
    voter = _get_session_voter(voter_id)
    if voter is None:
        return _voter_not_found()

    try:
        election = active_election_for_type(election_type)
    except ElectionError as exc:
        return election_error_response(exc)

    if not allow_request(
        scope="elections.vote_submit",
        key_parts=[str(election.id), voter_id],
        limit=settings.ELECTION_RATE_LIMIT_VOTE_SUBMIT_LIMIT,
        window_seconds=settings.ELECTION_RATE_LIMIT_VOTE_SUBMIT_WINDOW_SECONDS,
    ):
        return error_response(
            "Too many vote submissions. Please try again later.",
            kind="RateLimited",
            status=429,
        )

    try:
        ballot = _parse_ballot_payload(request)
        receipt = submit_ballot(
            voter=voter,
            election_type=election_type,
            ballot=ballot,
            provenance=request_provenance(request),
        )
    except ElectionError as exc:
        return election_error_response(exc)

    return JsonResponse(
        {
            "ok": True,
            "election_id": receipt.election.id,
            "zone_id": receipt.zone.id,
            "votes": receipt.votes_count,
            "nota": receipt.nota_count,
        }
    )


@require_GET
def election_ballot(request, election_type: str):
    _require_election_type(election_type)

    voter_id = get_voter_id(request)
    if not voter_id:
        return _authentication_required()
    voter = _get_session_voter(voter_id)
    if voter is None:
        return _voter_not_found()

    try:
        election = active_election_for_type(election_type)
        zone = voter.zone_for(election_type)
        if zone is None or not zone.is_active:
            raise NoZoneAssignedError("You are not assigned to a zone for this election.")
    except ElectionError as exc:
        return election_error_response(exc)

    has_voted = (
        Vote.objects.filter(election=election, voter=voter).exists()
        or BallotClaim.objects.filter(election=election, voter_id=voter.voter_id).exists()
    )

    candidates = list(
        Candidate.objects.filter(zone=zone, status=Candidate.Status.approved, is_nota=False).only("id", "name")
    )
    random.shuffle(candidates)

    return JsonResponse(
        {
            "ok": True,
            "election": {"id": election.id, "name": election.name, "type": election.election_type},
            "zone": _zone_payload(zone),
            "candidates": [{"id": c.id, "name": c.name} for c in candidates],
            "notaMarker": nota_marker_for_zone(zone),
            "hasVoted": has_voted,
        }
    )
