"""
JWT authentication for staff requests.

Tokens are issued by :func:`issue_tokens` and carry the claims an
:class:`~camps.identity.Identity` is built from (``user_id``, ``role``
and ``camp_id``).  Keeping this module free of view imports avoids the
circular imports DRF would otherwise hit while loading authentication
classes from settings.
"""
from __future__ import annotations

from typing import Optional

from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.exceptions import InvalidToken
from rest_framework_simplejwt.tokens import RefreshToken

from .identity import Identity


def issue_tokens(user) -> RefreshToken:
    """Return a refresh token (with its access token) stamped with identity claims."""
    refresh = RefreshToken.for_user(user)
    refresh['role'] = user.role
    refresh['camp_id'] = str(user.camp_id) if user.camp_id else None
    return refresh


class CampJWTAuthentication(JWTAuthentication):
    """Validate the bearer token and attach the caller's :class:`Identity`.

    Role and camp come from the signed claims.  A token whose claims no
    longer match the stored account (role change, camp reassignment) is
    rejected rather than trusted.
    """

    def authenticate(self, request):
        result = super().authenticate(request)
        if result is None:
            return None
        user, token = result
        try:
            identity = Identity.from_claims(token)
        except (KeyError, ValueError) as exc:
            raise InvalidToken('Invalid token payload') from exc
        if identity != Identity.from_user(user):
            raise InvalidToken('Token claims no longer match the account')
        request._request.identity = identity
        return user, token


def get_identity(request) -> Optional[Identity]:
    """Return the :class:`Identity` for an authenticated request, if any."""
    identity = getattr(request._request, 'identity', None) if hasattr(request, '_request') else None
    if identity is not None:
        return identity
    user = getattr(request, 'user', None)
    if user is not None and getattr(user, 'is_authenticated', False):
        return Identity.from_user(user)
    return None
