"""
Doctor endpoints: the visit queue, search, check-in scan, consultation
recording and attachments.  Every route is camp scoped; the
``CampIsolation`` permission validates ``camp_id`` before the view runs.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, parser_classes, permission_classes
from rest_framework.parsers import FormParser, MultiPartParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework import serializers, status

from camps.authentication import get_identity
from camps.exceptions import NotFound, ValidationFailed
from camps.models import Visitor
from camps.pagination import paginate
from camps.permissions import CampIsolation, IsDoctor
from camps.serializers.visits import (
    AttachmentOutSerializer, AttachmentUploadSerializer, ConsultationOutSerializer, ConsultationSerializer,
    PageQuerySerializer, SearchQuerySerializer, VisitDetailSerializer, VisitListQuerySerializer,
    VisitOutSerializer, VisitorOutSerializer,
)
from camps.services import scancodes, visits
from camps.services.isolation import parse_camp_id

DOCTOR = [IsAuthenticated, IsDoctor, CampIsolation]


class ScanCodeSerializer(serializers.Serializer):
    code = serializers.CharField()


@api_view(['GET'])
@permission_classes(DOCTOR)
def list_visits(request, camp_id):
    q = VisitListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    qs = visits.list_visits(get_identity(request), request.camp_id, status=q.validated_data.get('status'))
    return Response({'ok': True, 'visits': VisitOutSerializer(qs, many=True).data})


@api_view(['GET'])
@permission_classes(DOCTOR)
def search_visits(request, camp_id):
    q = SearchQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    qs = visits.search(get_identity(request), request.camp_id, q.validated_data['query'],
                       q.validated_data.get('searchBy') or None)
    return Response({'ok': True, 'visits': VisitOutSerializer(qs, many=True).data})


@api_view(['GET'])
@permission_classes(DOCTOR)
def my_patients(request, camp_id):
    q = PageQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    qs = visits.list_my_patients(get_identity(request), request.camp_id, search_text=vd.get('search', ''))
    items, meta = paginate(qs, vd['page'], vd['limit'])
    patients = []
    for visit in items:
        row = VisitorOutSerializer(visit.visitor).data
        row['latestStatus'] = visit.status
        row['consultationDate'] = visit.consultation_time
        row['diagnosis'] = getattr(getattr(visit, 'consultation', None), 'diagnosis', None)
        patients.append(row)
    return Response({'ok': True, 'visitors': patients, **meta})


@api_view(['GET'])
@permission_classes(DOCTOR)
def visitor_details(request, camp_id, visitor_id):
    visitor, history = visits.visitor_details(get_identity(request), request.camp_id, visitor_id)
    return Response({
        'ok': True,
        'visitor': VisitorOutSerializer(visitor).data,
        'visits': VisitOutSerializer(history, many=True).data,
    })


@api_view(['GET'])
@permission_classes(DOCTOR)
def visit_details(request, camp_id, visit_id):
    visit = visits.visit_details(get_identity(request), request.camp_id, visit_id)
    return Response({'ok': True, 'visit': VisitDetailSerializer(visit, context={'request': request}).data})


def _scan_response(visitor, visit):
    return Response({
        'ok': True,
        'visitor': VisitorOutSerializer(visitor).data,
        'visit': VisitOutSerializer(visit).data,
        'camp': {'id': str(visitor.camp_id), 'slug': visitor.camp.slug, 'name': visitor.camp.name},
    })


@api_view(['POST'])
@permission_classes(DOCTOR)
def scan_visitor(request, camp_id, visitor_id):
    visitor, visit = visits.resolve_by_scan(get_identity(request), visitor_id, camp_id=request.camp_id)
    return _scan_response(visitor, visit)


@api_view(['POST'])
@permission_classes(DOCTOR)
def scan_code(request, camp_id):
    """Resolve the raw text read from a check-in code (either payload form)."""
    s = ScanCodeSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    try:
        payload = scancodes.decode_payload(s.validated_data['code'])
    except ValueError as exc:
        raise ValidationFailed('Unrecognised check-in code.', code='invalid_scan_code') from exc
    if payload.is_link:
        visitor_id = payload.visitor_id
    else:
        visitor_id = (Visitor.objects.filter(camp_id=payload.camp_id, patient_id=payload.patient_id)
                      .values_list('id', flat=True).first()) if parse_camp_id(payload.camp_id) else None
        if visitor_id is None:
            raise NotFound('Visitor not found.', code='visitor_not_found')
    visitor, visit = visits.resolve_by_scan(get_identity(request), visitor_id, camp_id=request.camp_id)
    return _scan_response(visitor, visit)


@api_view(['POST'])
@permission_classes(DOCTOR)
def save_consultation(request, camp_id):
    s = ConsultationSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = dict(s.validated_data)
    visit_id = vd.pop('visitId')
    consultation = visits.save_consultation(get_identity(request), request.camp_id, visit_id, vd)
    return Response({
        'ok': True,
        'consultation': ConsultationOutSerializer(consultation).data,
        'message': 'Consultation saved successfully',
    })


@api_view(['POST'])
@permission_classes(DOCTOR)
@parser_classes([MultiPartParser, FormParser])
def upload_attachments(request, camp_id):
    s = AttachmentUploadSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    files = request.FILES.getlist('files') if hasattr(request.FILES, 'getlist') else []
    created = visits.upload_attachments(get_identity(request), request.camp_id, s.validated_data['visitId'],
                                        files, s.validated_data['type'])
    return Response({
        'ok': True,
        'attachments': AttachmentOutSerializer(created, many=True, context={'request': request}).data,
        'message': 'Files uploaded successfully',
    }, status=status.HTTP_201_CREATED)


@api_view(['DELETE'])
@permission_classes(DOCTOR)
def delete_attachment(request, camp_id, attachment_id):
    visits.delete_attachment(get_identity(request), request.camp_id, attachment_id)
    return Response({'ok': True, 'message': 'Attachment deleted successfully'})
