"""
Administrator endpoints: camp (tenant) management, staff listings and
password resets.
"""
from __future__ import annotations

from django.conf import settings
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from camps.authentication import get_identity
from camps.models import Role
from camps.pagination import paginate
from camps.permissions import IsAdmin
from camps.serializers.auth import PasswordResetSerializer
from camps.serializers.camps import (
    CampCreateSerializer, CampOutSerializer, CampWriteSerializer, StaffOutSerializer, StaffQuerySerializer,
)
from camps.services import accounts, tenants

ADMIN = [IsAuthenticated, IsAdmin]


@api_view(['GET', 'POST'])
@permission_classes(ADMIN)
def camps(request):
    if request.method == 'GET':
        return Response({'ok': True, 'camps': CampOutSerializer(tenants.list_camps(), many=True).data})

    s = CampCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = dict(s.validated_data)
    head = vd.pop('campHead')
    doctors = vd.pop('doctors', [])
    created = tenants.create_camp(get_identity(request), vd, head, doctors)
    return Response({
        'ok': True,
        'camp': CampOutSerializer(created['camp']).data,
        'campUrl': f"{settings.FRONTEND_URL}/#/{created['camp'].slug}",
        'campHeadCredentials': created['campHeadCredentials'],
        'doctorCredentials': created['doctorCredentials'],
    }, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes(ADMIN)
def camp_detail(request, camp_id):
    identity = get_identity(request)
    if request.method == 'GET':
        camp = tenants.camp_details(camp_id)
        data = CampOutSerializer(camp).data
        data['staff'] = StaffOutSerializer(camp.staff_list, many=True).data
        return Response({'ok': True, 'camp': data})

    if request.method == 'PATCH':
        s = CampWriteSerializer(data=request.data, partial=True)
        s.is_valid(raise_exception=True)
        camp = tenants.update_camp(identity, camp_id, s.validated_data)
        return Response({'ok': True, 'camp': CampOutSerializer(camp).data})

    counts = tenants.delete_tenant(identity, camp_id)
    return Response({'ok': True, 'deleted': counts, 'message': 'Camp and all related data deleted successfully'})


@api_view(['GET'])
@permission_classes(ADMIN)
def users(request):
    """Staff accounts, filtered by ``role`` and ``campId`` query parameters."""
    q = StaffQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    qs = tenants.list_staff(role=vd.get('role'), camp_id=vd.get('campId'))
    items, meta = paginate(qs, vd['page'], vd['limit'])
    return Response({'ok': True, 'users': StaffOutSerializer(items, many=True).data, **meta})


@api_view(['GET'])
@permission_classes(ADMIN)
def camp_doctors(request, camp_id):
    doctors = tenants.camp_doctors(camp_id)
    return Response({'ok': True, 'doctors': StaffOutSerializer(doctors, many=True).data})


@api_view(['GET'])
@permission_classes(ADMIN)
def camp_head_detail(request, camp_id):
    return Response({'ok': True, 'campHead': StaffOutSerializer(tenants.camp_head(camp_id)).data})


def _reset(request, user_id, role):
    s = PasswordResetSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    result = accounts.reset_password(get_identity(request), user_id, role,
                                     manual_password=s.validated_data.get('manualPassword'))
    return Response({'ok': True, 'message': 'Password reset successfully', **result})


@api_view(['POST'])
@permission_classes(ADMIN)
def reset_doctor_password(request, user_id):
    return _reset(request, user_id, Role.DOCTOR)


@api_view(['POST'])
@permission_classes(ADMIN)
def reset_camp_head_password(request, user_id):
    return _reset(request, user_id, Role.CAMP_HEAD)
