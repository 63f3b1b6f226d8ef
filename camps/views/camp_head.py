"""
Camp head endpoints: the visitor register, the camp's doctors and
notification triage.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from camps.authentication import get_identity
from camps.exceptions import NotFound
from camps.models import Role, Visitor
from camps.pagination import paginate
from camps.permissions import CampIsolation, IsCampHead
from camps.serializers.auth import PasswordResetSerializer
from camps.serializers.camps import StaffOutSerializer
from camps.serializers.notifications import (
    NotificationLogOutSerializer, NotificationQuerySerializer, SendNotificationSerializer,
)
from camps.serializers.visits import PageQuerySerializer, VisitorOutSerializer
from camps.services import accounts, tenants, visits
from camps.services.audit import log_action, query_notifications
from camps.services.notifications import get_dispatcher

CAMP_HEAD = [IsAuthenticated, IsCampHead, CampIsolation]


@api_view(['GET'])
@permission_classes(CAMP_HEAD)
def list_visitors(request, camp_id):
    q = PageQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    qs = visits.list_visitors(get_identity(request), request.camp_id, search_text=vd.get('search', ''))
    items, meta = paginate(qs, vd['page'], vd['limit'])
    rows = []
    for visitor in items:
        row = VisitorOutSerializer(visitor).data
        latest = max(visitor.visits.all(), key=lambda v: v.created_at, default=None)
        row['latestStatus'] = latest.status if latest else None
        rows.append(row)
    return Response({'ok': True, 'visitors': rows, **meta})


@api_view(['GET', 'POST'])
@permission_classes(CAMP_HEAD)
def notifications(request, camp_id):
    """
    GET lists the camp's notification log (filter by ``kind``,
    ``status``, ``visitorId``).  POST sends a reminder or custom message
    to one visitor right away and returns the dispatch outcome.
    """
    if request.method == 'GET':
        q = NotificationQuerySerializer(data=request.query_params)
        q.is_valid(raise_exception=True)
        vd = q.validated_data
        qs = query_notifications(camp_id=request.camp_id, visitor_id=vd.get('visitorId'),
                                 kind=vd.get('kind'), status=vd.get('status'))
        items, meta = paginate(qs, vd['page'], vd['limit'])
        return Response({'ok': True, 'notifications': NotificationLogOutSerializer(items, many=True).data, **meta})

    s = SendNotificationSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    visitor = Visitor.objects.select_related('camp').filter(pk=vd['visitorId'], camp_id=request.camp_id).first()
    if visitor is None:
        raise NotFound('Visitor not found.', code='visitor_not_found')
    result = get_dispatcher().dispatch(vd['kind'], visitor.camp, visitor, {'text': vd['text']})
    log_action(user=get_identity(request), action='notification_send', camp_id=request.camp_id,
               object_type='visitor', object_id=visitor.pk, detail={'kind': vd['kind'], 'result': result.status.value})
    return Response({'ok': True, 'result': result.as_dict()})


@api_view(['GET'])
@permission_classes(CAMP_HEAD)
def doctors(request, camp_id):
    q = PageQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    items, meta = paginate(tenants.camp_doctors(request.camp_id), vd['page'], vd['limit'])
    return Response({'ok': True, 'doctors': StaffOutSerializer(items, many=True).data, **meta})


@api_view(['POST'])
@permission_classes(CAMP_HEAD)
def reset_doctor_password(request, camp_id, doctor_id):
    """Reset the password of a doctor in this camp; doctors elsewhere are not found."""
    s = PasswordResetSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    result = accounts.reset_password(get_identity(request), doctor_id, Role.DOCTOR, camp_id=request.camp_id,
                                     manual_password=s.validated_data.get('manualPassword'))
    return Response({'ok': True, 'message': 'Password reset successfully', **result})
