"""
Permission classes for role based access and tenant isolation.
"""
from rest_framework.permissions import BasePermission

from .authentication import get_identity
from .exceptions import AuthorizationDenied, NotFound
from .models import Role
from .services.isolation import ensure_authorized, requested_camp_id


class _HasRole(BasePermission):
    roles: frozenset = frozenset()

    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        identity = get_identity(request)
        if identity is None:
            return False
        if identity.role not in self.roles:
            raise AuthorizationDenied('Insufficient role for this operation.', code='insufficient_role')
        return True


class IsAdmin(_HasRole):
    """Only administrators."""
    roles = frozenset({Role.ADMIN})


class IsCampHead(_HasRole):
    """Camp heads, or administrators acting on their behalf."""
    roles = frozenset({Role.CAMP_HEAD, Role.ADMIN})


class IsDoctor(_HasRole):
    """Doctors and administrators."""
    roles = frozenset({Role.DOCTOR, Role.ADMIN})


class CampIsolation(BasePermission):
    """Reject requests whose target camp is not the caller's home camp.

    The camp id is read from the ``camp_id`` URL kwarg, the body's
    ``campId`` and the ``campId`` query parameter; they must agree.
    The validated id is stored on ``request.camp_id`` for the view.
    """

    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        identity = get_identity(request)
        if identity is None:
            return False
        body = request.data.get('campId') if hasattr(request.data, 'get') else None
        requested = requested_camp_id(
            getattr(view, 'kwargs', {}).get('camp_id'),
            body,
            request.query_params.get('campId'),
        )
        camp_id = ensure_authorized(identity, requested)
        if camp_id is None:
            # administrators pass the guard without a usable camp id
            raise NotFound('Camp not found.', code='camp_not_found')
        request.camp_id = camp_id
        return True
