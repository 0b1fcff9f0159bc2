"""Request helpers shared by the JSON views."""

from __future__ import annotations

import json
import logging

from django.http import HttpRequest, JsonResponse

from core.elections_errors import ElectionError, MalformedBallotError, PersistenceError
from core.elections_services import PERSISTENCE_FAILURE_MESSAGE, RequestProvenance

logger = logging.getLogger(__name__)

VOTER_SESSION_KEY = "_voter_id"


def _normalize_str(value: object) -> str:
    return str(value or "").strip()


def get_voter_id(request: HttpRequest) -> str:
    """The VID the voter login flow stored in the session, or "" when anonymous."""
    session = request.session if hasattr(request, "session") else None
    return _normalize_str(session.get(VOTER_SESSION_KEY) if session else None)


def get_actor(request: HttpRequest) -> str:
    user = getattr(request, "user", None)
    if user is None or not user.is_authenticated:
        return ""
    return _normalize_str(user.get_username())


def client_ip(request: HttpRequest) -> str:
    # X-Forwarded-For is client-controlled; only the socket peer is trusted.
    return _normalize_str(request.META.get("REMOTE_ADDR"))


def request_provenance(request: HttpRequest) -> RequestProvenance:
    return RequestProvenance(
        ip_address=client_ip(request) or None,
        user_agent=_normalize_str(request.META.get("HTTP_USER_AGENT")),
    )


def parse_json_body(request: HttpRequest) -> dict[str, object]:
    if request.content_type and request.content_type.startswith("application/json"):
        raw = request.body.decode("utf-8") if request.body else "{}"
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise MalformedBallotError("Request body is not valid JSON.") from exc
        if not isinstance(data, dict):
            raise MalformedBallotError("Request body must be a JSON object.")
        return data
    return {key: request.POST.get(key) for key in request.POST}


def error_response(error: str, *, kind: str, status: int) -> JsonResponse:
    return JsonResponse({"ok": False, "error": error, "kind": kind}, status=status)


def election_error_response(exc: ElectionError) -> JsonResponse:
    if isinstance(exc, PersistenceError):
        return error_response(PERSISTENCE_FAILURE_MESSAGE, kind=exc.kind, status=exc.status_code)
    return error_response(str(exc), kind=exc.kind, status=exc.status_code)
