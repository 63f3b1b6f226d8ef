import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

from django.contrib.auth import authenticate
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError
from django.utils import timezone
from django.utils.crypto import get_random_string
from rest_framework.exceptions import ValidationError as DRFValidation
from rest_framework_simplejwt.token_blacklist.models import BlacklistedToken, OutstandingToken
from rest_framework_simplejwt.tokens import RefreshToken

from camps.authentication import issue_tokens
from camps.exceptions import AuthenticationFailed, NotFound, ValidationFailed
from camps.identity import Identity
from camps.models import Camp, Role, User
from camps.services.audit import log_action

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = 'Invalid credentials.'
# at least one lower case letter, one upper case letter and one digit
PASSWORD_MIX = re.compile(r'^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)')


@dataclass
class LoginResult:
    user: User
    refresh: RefreshToken

    @property
    def access(self) -> str:
        return str(self.refresh.access_token)


def _reject(email: str, reason: str, camp_id=None, request=None):
    logger.warning('Login failed for %s: %s', email, reason)
    log_action(user=None, action='login_failed', camp_id=camp_id, object_type='user',
               detail={'email': email, 'reason': reason, 'ip': _client_ip(request)})
    raise AuthenticationFailed(INVALID_CREDENTIALS)


def _client_ip(request) -> Optional[str]:
    if request is None:
        return None
    meta = getattr(request, 'META', {})
    forwarded = meta.get('HTTP_X_FORWARDED_FOR')
    return forwarded.split(',')[0].strip() if forwarded else meta.get('REMOTE_ADDR')


def login(email: str, password: str, camp_slug: Optional[str] = None, *, request=None) -> LoginResult:
    """Authenticate a staff member.

    Without ``camp_slug`` only administrators may log in; with one the
    account must belong to that camp.  Unknown email and wrong password
    produce the same error.
    """
    email = (email or '').strip().lower()
    camp = None
    if camp_slug:
        camp = Camp.objects.filter(slug=camp_slug).first()
        if camp is None:
            raise NotFound('Camp not found.', code='camp_not_found')

    user = authenticate(request, email=email, password=password)
    if user is None:
        _reject(email, 'bad credentials', camp.pk if camp else None, request)
    if camp is None and user.role != Role.ADMIN:
        _reject(email, 'staff login without camp', user.camp_id, request)
    if camp is not None and user.camp_id != camp.pk:
        _reject(email, 'camp mismatch', camp.pk, request)

    refresh = issue_tokens(user)
    User.objects.filter(pk=user.pk).update(last_login=timezone.now())
    log_action(user=user, action='login', camp_id=user.camp_id, object_type='user', object_id=user.pk,
               detail={'ip': _client_ip(request)})
    logger.info('User %s logged in (%s)', user.pk, user.role)
    return LoginResult(user=user, refresh=refresh)


def logout(refresh_token: str) -> None:
    RefreshToken(refresh_token).blacklist()


def ensure_admin(email: str, password: str, name: str = 'Administrator') -> tuple:
    """Create the administrator account unless it exists; returns ``(user, created)``."""
    email = email.strip().lower()
    user = User.objects.filter(email=email).first()
    if user is not None:
        return user, False
    user = User.objects.create_superuser(email=email, password=password, name=name)
    return user, True


# ---------------------------------------------------------------------------
# Passwords
# ---------------------------------------------------------------------------

def generate_password() -> str:
    return get_random_string(12)


def check_new_password(password: str, user: Optional[User] = None, *, field: str = 'password') -> None:
    """Apply the configured validators plus the letter/digit mix rule."""
    errors = []
    try:
        validate_password(password, user)
    except ValidationError as e:
        errors.extend(e.messages)
    if not PASSWORD_MIX.match(password or ''):
        errors.append('Password must contain an uppercase letter, a lowercase letter and a number.')
    if errors:
        raise DRFValidation({field: errors})


def revoke_sessions(user: User) -> int:
    """Blacklist every outstanding refresh token of ``user``; returns how many were newly revoked."""
    revoked = 0
    for token in OutstandingToken.objects.filter(user=user):
        _, created = BlacklistedToken.objects.get_or_create(token=token)
        revoked += int(created)
    return revoked


def change_password(identity: Identity, current_password: str, new_password: str) -> None:
    """Change the acting user's own password and sign out their other sessions."""
    user = User.objects.get(pk=identity.user_id)
    if not user.check_password(current_password):
        logger.warning('Password change for user %s refused: wrong current password', user.pk)
        raise ValidationFailed('Current password is incorrect.', code='wrong_password')
    if current_password == new_password:
        raise ValidationFailed('New password must differ from the current one.', code='password_unchanged')
    check_new_password(new_password, user, field='newPassword')
    user.set_password(new_password)
    user.save(update_fields=['password'])
    revoke_sessions(user)
    log_action(user=identity, action='password_change', camp_id=user.camp_id, object_type='user', object_id=user.pk)
    logger.info('User %s changed their password', user.pk)


STAFF_LABELS = {Role.DOCTOR: 'Doctor', Role.CAMP_HEAD: 'Camp head'}


def reset_password(identity: Identity, user_id, role: str, *, camp_id=None,
                   manual_password: Optional[str] = None) -> Dict[str, Any]:
    """Give a doctor or camp head a new password.

    ``camp_id`` confines the lookup to one camp (camp heads resetting
    their own doctors).  Without ``manual_password`` one is generated.
    The plain-text password is returned once and never logged.
    """
    qs = User.objects.filter(pk=user_id, role=role)
    if camp_id is not None:
        qs = qs.filter(camp_id=camp_id)
    user = qs.first()
    if user is None:
        raise NotFound(f'{STAFF_LABELS[role]} not found.', code=f'{role.lower()}_not_found')

    mode = 'manual' if manual_password else 'auto'
    if manual_password:
        check_new_password(manual_password, user, field='manualPassword')
    password = manual_password or generate_password()
    user.set_password(password)
    user.save(update_fields=['password'])
    revoke_sessions(user)
    log_action(user=identity, action='password_reset', camp_id=user.camp_id, object_type='user', object_id=user.pk,
               detail={'mode': mode, 'role': role})
    logger.info('Password of user %s reset by user %s (%s)', user.pk, identity.user_id, mode)
    return {'tempPassword': password, 'name': user.name, 'email': user.email, 'passwordMode': mode}
