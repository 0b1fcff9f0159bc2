from collections.abc import Callable, Collection
from functools import wraps
from typing import ParamSpec, TypeVar

from django.http import HttpRequest, HttpResponse, JsonResponse

CORE_ADD_OFFLINE_VOTE = "core.add_offlinevote"
CORE_DELETE_OFFLINE_VOTE = "core.delete_offlinevote"
CORE_MERGE_OFFLINE_VOTE = "core.merge_offlinevote"
CORE_VIEW_RESULTS = "core.view_results"
CORE_DECLARE_RESULTS = "core.declare_results"

OFFLINE_VOTE_PERMISSIONS: frozenset[str] = frozenset(
    {
        CORE_ADD_OFFLINE_VOTE,
        CORE_DELETE_OFFLINE_VOTE,
        CORE_MERGE_OFFLINE_VOTE,
    }
)


P = ParamSpec("P")
R = TypeVar("R", bound=HttpResponse)


def _permission_denied() -> JsonResponse:
    return JsonResponse({"ok": False, "error": "Permission denied.", "kind": "PermissionDenied"}, status=403)


def json_permission_required(permission: str) -> Callable[[Callable[P, R]], Callable[P, HttpResponse]]:
    """Decorator for JSON endpoints that require a single Django permission.

    This returns a JSON 403 response instead of redirecting to a login page.
    """
    return json_permission_required_any({permission})


def json_permission_required_any(permissions: Collection[str]) -> Callable[[Callable[P, R]], Callable[P, HttpResponse]]:
    """Decorator for JSON endpoints that accept any one of several permissions."""

    perms = tuple(permissions)
    if not perms:
        raise ValueError("permissions must not be empty")

    def decorator(view_func: Callable[P, R]) -> Callable[P, HttpResponse]:
        @wraps(view_func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> HttpResponse:
            if not args or not isinstance(args[0], HttpRequest):
                return _permission_denied()

            user = args[0].user
            if not user.is_authenticated or not any(user.has_perm(perm) for perm in perms):
                return _permission_denied()

            return view_func(*args, **kwargs)

        return wrapper

    return decorator
