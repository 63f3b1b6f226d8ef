"""
Error taxonomy and the unified API exception handler.

Every failure a caller can see is one of the :class:`CampError`
subclasses below.  Each carries a stable ``code`` and a human message;
the handler renders them as ``{"ok": false, "error": {...}}``.
Anything else is logged with its traceback and rendered as a generic
500 so that internal details never reach the client.
"""
import logging

from rest_framework import exceptions as drf_exceptions
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)


class CampError(drf_exceptions.APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = 'error'
    default_detail = 'Request failed.'

    def __init__(self, detail=None, code=None):
        super().__init__(detail=detail or self.default_detail, code=code or self.default_code)
        self.code = code or self.default_code


class AuthenticationFailed(CampError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_code = 'authentication_failed'
    default_detail = 'Invalid credentials.'


class AuthorizationDenied(CampError):
    status_code = status.HTTP_403_FORBIDDEN
    default_code = 'authorization_denied'
    default_detail = 'Access denied.'


class NotFound(CampError):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = 'not_found'
    default_detail = 'Resource not found.'


class ValidationFailed(CampError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = 'validation_failed'
    default_detail = 'Validation failed.'


class ConflictingState(CampError):
    status_code = status.HTTP_409_CONFLICT
    default_code = 'conflicting_state'
    default_detail = 'The request conflicts with the current state.'


class DependencyFailed(CampError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_code = 'dependency_failed'
    default_detail = 'An upstream service failed.'


_DRF_CODES = {
    drf_exceptions.ValidationError: 'validation_failed',
    drf_exceptions.ParseError: 'validation_failed',
    drf_exceptions.NotAuthenticated: 'authentication_failed',
    drf_exceptions.AuthenticationFailed: 'authentication_failed',
    drf_exceptions.PermissionDenied: 'authorization_denied',
    drf_exceptions.NotFound: 'not_found',
    drf_exceptions.MethodNotAllowed: 'method_not_allowed',
    drf_exceptions.Throttled: 'throttled',
}


def _code_for(exc) -> str:
    if isinstance(exc, CampError):
        return exc.code
    for cls, code in _DRF_CODES.items():
        if isinstance(exc, cls):
            return code
    return 'api_error'


def api_exception_handler(exc, context):
    resp = drf_exception_handler(exc, context)
    if resp is None:
        view = context.get('view')
        logger.exception('Unhandled error in %s', type(view).__name__ if view else 'view', exc_info=exc)
        return Response(
            {'ok': False, 'error': {'code': 'server_error', 'message': 'An unexpected error occurred.'}},
            status=500,
        )
    # normalize response
    if isinstance(exc, drf_exceptions.ValidationError):
        message = 'Validation failed.'
        fields = resp.data
    else:
        message = resp.data.get('detail') if isinstance(resp.data, dict) else str(resp.data)
        fields = None
    error = {'code': _code_for(exc), 'message': str(message)}
    if fields is not None:
        error['fields'] = fields
    out = Response({'ok': False, 'error': error}, status=resp.status_code)
    for header in ('WWW-Authenticate', 'Retry-After', 'Allow'):
        if header in resp:
            out[header] = resp[header]
    return out
