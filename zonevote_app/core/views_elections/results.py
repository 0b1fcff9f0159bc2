"""Results reporting: ranked tally, turnout, declaration and the public winners feed."""

from django.http import JsonResponse
from django.views.decorators.http import require_GET, require_POST

from core.elections_errors import ElectionError
from core.elections_services import declare_results, revoke_results
from core.elections_tally import public_winners
from core.permissions import CORE_DECLARE_RESULTS, CORE_VIEW_RESULTS, json_permission_required
from core.results_cache import cached_election_results, cached_zone_turnout, invalidate_election_results
from core.views_elections._helpers import _get_current_election, _require_election_type
from core.views_utils import election_error_response, error_response, get_actor, parse_json_body


def _truthy(raw: object) -> bool:
    return str(raw or "").strip().lower() in {"1", "true", "yes"}


@require_GET
@json_permission_required(CORE_VIEW_RESULTS)
def election_results(request, election_type: str):
    election = _get_current_election(election_type)
    results = cached_election_results(election, real_winners_only=_truthy(request.GET.get("real_winners_only")))
    return JsonResponse({"ok": True, **results})


@require_GET
@json_permission_required(CORE_VIEW_RESULTS)
def election_turnout(request, election_type: str):
    election = _get_current_election(election_type)
    return JsonResponse({"ok": True, **cached_zone_turnout(election)})


@require_POST
@json_permission_required(CORE_DECLARE_RESULTS)
def election_results_declaration(request, election_type: str):
    election = _get_current_election(election_type)
    try:
        action = str(parse_json_body(request).get("action") or "").strip().lower()
        if action == "declare":
            declare_results(election=election, actor=get_actor(request))
        elif action == "revoke":
            revoke_results(election=election, actor=get_actor(request))
        else:
            return error_response("action must be 'declare' or 'revoke'.", kind="InvalidAction", status=400)
    except ElectionError as exc:
        return election_error_response(exc)

    invalidate_election_results(election.id)
    declared_at = election.results_declared_at
    return JsonResponse(
        {
            "ok": True,
            "election_id": election.id,
            "declared": declared_at is not None,
            "declaredAt": declared_at.isoformat() if declared_at else None,
        }
    )


@require_GET
def election_winners(request, election_type: str):
    return JsonResponse({"ok": True, **public_winners(_require_election_type(election_type))})
