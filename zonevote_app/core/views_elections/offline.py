"""Offline ballot administration: voter lookup, capture, listing, deletion and merge."""

from django.http import JsonResponse
from django.views.decorators.http import require_GET, require_POST

from core.elections_errors import ElectionError, MalformedBallotError
from core.elections_offline import (
    delete_offline_ballot,
    list_offline_ballots,
    lookup_offline_voter,
    merge_offline_votes,
    submit_offline_ballot,
)
from core.permissions import (
    CORE_ADD_OFFLINE_VOTE,
    CORE_DELETE_OFFLINE_VOTE,
    CORE_MERGE_OFFLINE_VOTE,
    OFFLINE_VOTE_PERMISSIONS,
    json_permission_required,
    json_permission_required_any,
)
from core.views_elections._helpers import _get_current_election, _require_election_type
from core.views_utils import election_error_response, get_actor, parse_json_body


def _parse_is_merged(raw: str | None) -> bool | None:
    value = str(raw or "").strip().lower()
    if value in {"1", "true", "yes"}:
        return True
    if value in {"0", "false", "no"}:
        return False
    return None


@require_POST
@json_permission_required(CORE_ADD_OFFLINE_VOTE)
def offline_voter_lookup(request, election_type: str):
    _require_election_type(election_type)
    try:
        data = parse_json_body(request)
        result = lookup_offline_voter(
            raw_voter_id=str(data.get("voterId") or ""),
            election_type=election_type,
        )
    except ElectionError as exc:
        return election_error_response(exc)

    return JsonResponse({"ok": True, **result.as_dict()})


@require_POST
@json_permission_required(CORE_ADD_OFFLINE_VOTE)
def offline_ballot_submit(request, election_type: str):
    _require_election_type(election_type)
    try:
        data = parse_json_body(request)
        picks = data.get("votes") or {}
        if not isinstance(picks, dict):
            raise MalformedBallotError("votes must be an object (it can be empty for all NOTA).")
        receipt = submit_offline_ballot(
            voter_id=str(data.get("voterId") or ""),
            admin_identity=get_actor(request),
            election_type=election_type,
            picks=picks,
            notes=str(data.get("notes") or ""),
        )
    except ElectionError as exc:
        return election_error_response(exc)

    return JsonResponse(
        {
            "ok": True,
            "election_id": receipt.election.id,
            "voterId": receipt.voter.voter_id,
            "votesSubmitted": receipt.votes_submitted,
            "allNota": receipt.all_nota,
        }
    )


@require_GET
@json_permission_required_any(OFFLINE_VOTE_PERMISSIONS)
def offline_ballot_list(request, election_type: str):
    election = _get_current_election(election_type)
    ballots = list_offline_ballots(
        election=election,
        is_merged=_parse_is_merged(request.GET.get("merged")),
        voter_id_contains=str(request.GET.get("q") or ""),
    )
    return JsonResponse(
        {
            "ok": True,
            "election_id": election.id,
            "count": len(ballots),
            "ballots": [b.as_dict() for b in ballots],
        }
    )


@require_POST
@json_permission_required(CORE_DELETE_OFFLINE_VOTE)
def offline_ballot_delete(request, election_type: str, voter_id: str):
    election = _get_current_election(election_type)
    try:
        deleted = delete_offline_ballot(election=election, voter_id=voter_id, actor=get_actor(request))
    except ElectionError as exc:
        return election_error_response(exc)

    return JsonResponse({"ok": True, "voterId": voter_id, "deleted": deleted})


@require_POST
@json_permission_required(CORE_MERGE_OFFLINE_VOTE)
def offline_votes_merge(request, election_type: str):
    election = _get_current_election(election_type)
    report = merge_offline_votes(election=election, actor=get_actor(request))
    return JsonResponse({"ok": True, **report.as_dict()})
