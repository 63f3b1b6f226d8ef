"""
Authentication views: login, token refresh, logout and password change.

Kept apart from ``camps.authentication`` so that DRF can import the
authentication class from settings without pulling in the views.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, authentication_classes, permission_classes, throttle_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.serializers import TokenRefreshSerializer

from camps.authentication import get_identity
from camps.exceptions import AuthenticationFailed, ValidationFailed
from camps.serializers.auth import (
    ChangePasswordSerializer, LoginSerializer, RefreshSerializer, UserSummarySerializer,
)
from camps.services import accounts
from camps.throttling import LoginRateThrottle


@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
@throttle_classes([LoginRateThrottle])
def login_view(request):
    """
    Staff login.  Body: ``email``, ``password`` and, for camp staff,
    ``campSlug``.  Administrators log in without a slug.
    """
    s = LoginSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    result = accounts.login(vd['email'], vd['password'], vd.get('campSlug') or None, request=request)
    return Response({
        'ok': True,
        'access': result.access,
        'refresh': str(result.refresh),
        'user': UserSummarySerializer(result.user).data,
    })


@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
@throttle_classes([LoginRateThrottle])
def refresh_view(request):
    s = TokenRefreshSerializer(data=request.data)
    try:
        s.is_valid(raise_exception=True)
    except TokenError as exc:
        raise AuthenticationFailed('Refresh token is invalid or expired.', code='token_not_valid') from exc
    return Response({'ok': True, **s.validated_data})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def logout_view(request):
    s = RefreshSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    try:
        accounts.logout(s.validated_data['refresh'])
    except TokenError as exc:
        raise ValidationFailed('Refresh token is invalid or expired.', code='token_not_valid') from exc
    return Response({'ok': True})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def change_password_view(request):
    """
    Change the caller's own password.  Every refresh token issued to
    the account is revoked, so other sessions end when their access
    token expires.
    """
    s = ChangePasswordSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    accounts.change_password(get_identity(request), s.validated_data['currentPassword'],
                             s.validated_data['newPassword'])
    return Response({'ok': True, 'message': 'Password changed successfully'})
