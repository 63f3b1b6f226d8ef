"""
Public endpoints: the camp landing page, visitor self-registration and
signed visit-summary links.
"""
from __future__ import annotations

import logging

from django.conf import settings
from rest_framework import status
from rest_framework.decorators import api_view, authentication_classes, permission_classes, throttle_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from camps.exceptions import DependencyFailed
from camps.serializers.camps import CampPublicSerializer
from camps.serializers.visits import RegistrationSerializer, VisitSummarySerializer
from camps.services import scancodes, tenants, visits
from camps.throttling import RegistrationRateThrottle

logger = logging.getLogger(__name__)


@api_view(['GET'])
@authentication_classes([])
@permission_classes([AllowAny])
def camp_info(request, slug):
    info = tenants.camp_info(slug)
    data = CampPublicSerializer(info['camp']).data
    data['doctors'] = info['doctors']
    return Response({'ok': True, 'camp': data})


@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
@throttle_classes([RegistrationRateThrottle])
def register(request, slug):
    camp = visits.get_camp_by_slug(slug)
    s = RegistrationSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    visitor, visit = visits.register(camp, s.validated_data)

    qr_code = None
    payload = scancodes.build_payload(camp, visitor, frontend_url=settings.FRONTEND_URL)
    try:
        qr_code = scancodes.as_data_url(scancodes.generate_png(payload, timeout=settings.QR_TIMEOUT))
    except DependencyFailed:
        logger.warning('QR code for visitor %s could not be generated', visitor.patient_id, exc_info=True)

    return Response({
        'ok': True,
        'visitor': {
            'id': str(visitor.id),
            'patientId': visitor.patient_id,
            'name': visitor.name,
            'qrCode': qr_code,
        },
        'visitId': str(visit.id),
        'message': 'Registration successful. Details will be sent via Telegram once your chat is linked.',
    }, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@authentication_classes([])
@permission_classes([AllowAny])
def visit_summary(request, token):
    """Read-only summary of one completed visit, reached through a signed link."""
    visit = visits.visit_summary(token)
    return Response({'ok': True, 'visit': VisitSummarySerializer(visit).data})
