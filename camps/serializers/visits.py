import bleach
from rest_framework import serializers

from camps.models import Attachment, AttachmentType, Consultation, Visit, VisitStatus, Visitor
from camps.services.visits import SearchField


def _clean(v):
    return bleach.clean((v or '').strip(), tags=[], strip=True)


# ---------------------------------------------------------------------------
# Input
# ---------------------------------------------------------------------------

class RegistrationSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    phone = serializers.RegexField(r'^[\+]?[0-9\s\-\(\)]{5,32}$', max_length=32)
    age = serializers.IntegerField(min_value=0, max_value=150)
    gender = serializers.CharField(max_length=16)
    address = serializers.CharField(required=False, allow_blank=True)
    city = serializers.CharField(required=False, allow_blank=True, max_length=128)
    district = serializers.CharField(required=False, allow_blank=True, max_length=128)
    symptoms = serializers.CharField(required=False, allow_blank=True)
    existingConditions = serializers.CharField(required=False, allow_blank=True, source='existing_conditions')
    allergies = serializers.CharField(required=False, allow_blank=True)

    def validate_name(self, v):
        v = _clean(v)
        if len(v) < 2:
            raise serializers.ValidationError('Name must be at least 2 characters.')
        return v


class SearchQuerySerializer(serializers.Serializer):
    query = serializers.CharField()
    searchBy = serializers.ChoiceField(choices=SearchField.choices, required=False, allow_blank=True)


class VisitListQuerySerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=VisitStatus.choices, required=False)


class PageQuerySerializer(serializers.Serializer):
    search = serializers.CharField(required=False, allow_blank=True)
    page = serializers.IntegerField(required=False, min_value=1, default=1)
    limit = serializers.IntegerField(required=False, min_value=1, max_value=200, default=12)


class PrescriptionSerializer(serializers.Serializer):
    name = serializers.CharField(allow_blank=True, required=False, default='')
    dosage = serializers.CharField(allow_blank=True, required=False, default='')
    frequency = serializers.CharField(allow_blank=True, required=False, default='')
    duration = serializers.CharField(allow_blank=True, required=False, default='')


class ConsultationSerializer(serializers.Serializer):
    visitId = serializers.UUIDField()
    chiefComplaints = serializers.CharField(source='chief_complaints')
    clinicalNotes = serializers.CharField(source='clinical_notes', required=False, allow_blank=True)
    diagnosis = serializers.CharField()
    treatmentPlan = serializers.CharField(source='treatment_plan')
    prescriptions = PrescriptionSerializer(many=True, required=False)
    followUpAdvice = serializers.CharField(source='follow_up_advice', required=False, allow_blank=True)
    isInsured = serializers.BooleanField(source='is_insured', required=False, default=False)


class AttachmentUploadSerializer(serializers.Serializer):
    visitId = serializers.UUIDField()
    type = serializers.ChoiceField(choices=AttachmentType.choices, required=False, default=AttachmentType.DOCUMENT)


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------

class VisitorOutSerializer(serializers.ModelSerializer):
    campId = serializers.UUIDField(source='camp_id', read_only=True)
    patientId = serializers.CharField(source='patient_id')
    existingConditions = serializers.CharField(source='existing_conditions')
    chatLinked = serializers.SerializerMethodField()
    createdAt = serializers.DateTimeField(source='created_at')

    class Meta:
        model = Visitor
        fields = ['id', 'campId', 'patientId', 'name', 'phone', 'age', 'gender', 'address', 'city', 'district',
                  'symptoms', 'existingConditions', 'allergies', 'chatLinked', 'createdAt']

    def get_chatLinked(self, obj) -> bool:
        return bool(obj.chat_id)


class ConsultationOutSerializer(serializers.ModelSerializer):
    visitId = serializers.UUIDField(source='visit_id', read_only=True)
    chiefComplaints = serializers.CharField(source='chief_complaints')
    clinicalNotes = serializers.CharField(source='clinical_notes')
    treatmentPlan = serializers.CharField(source='treatment_plan')
    followUpAdvice = serializers.CharField(source='follow_up_advice')
    isInsured = serializers.BooleanField(source='is_insured')
    createdAt = serializers.DateTimeField(source='created_at')
    updatedAt = serializers.DateTimeField(source='updated_at')

    class Meta:
        model = Consultation
        fields = ['id', 'visitId', 'chiefComplaints', 'clinicalNotes', 'diagnosis', 'treatmentPlan',
                  'prescriptions', 'followUpAdvice', 'isInsured', 'createdAt', 'updatedAt']


class AttachmentOutSerializer(serializers.ModelSerializer):
    visitId = serializers.UUIDField(source='visit_id', read_only=True)
    fileName = serializers.CharField(source='file_name')
    fileUrl = serializers.SerializerMethodField()
    fileSize = serializers.IntegerField(source='file_size')
    mimeType = serializers.CharField(source='mime_type')
    createdAt = serializers.DateTimeField(source='created_at')

    class Meta:
        model = Attachment
        fields = ['id', 'visitId', 'fileName', 'fileUrl', 'type', 'fileSize', 'mimeType', 'createdAt']

    def get_fileUrl(self, obj) -> str:
        url = obj.file_url
        request = self.context.get('request')
        return request.build_absolute_uri(url) if request and url else url


def _consultation_or_none(visit):
    try:
        return visit.consultation
    except Consultation.DoesNotExist:
        return None


class VisitOutSerializer(serializers.ModelSerializer):
    campId = serializers.UUIDField(source='camp_id', read_only=True)
    visitor = VisitorOutSerializer(read_only=True)
    doctor = serializers.SerializerMethodField()
    consultation = serializers.SerializerMethodField()
    consultationTime = serializers.DateTimeField(source='consultation_time')
    createdAt = serializers.DateTimeField(source='created_at')

    class Meta:
        model = Visit
        fields = ['id', 'campId', 'status', 'visitor', 'doctor', 'consultation', 'consultationTime', 'createdAt']

    def get_doctor(self, obj):
        if obj.doctor_id is None:
            return None
        return {'id': obj.doctor_id, 'name': obj.doctor.name, 'specialty': obj.doctor.specialty}

    def get_consultation(self, obj):
        c = _consultation_or_none(obj)
        return ConsultationOutSerializer(c).data if c else None


class VisitDetailSerializer(VisitOutSerializer):
    attachments = AttachmentOutSerializer(many=True, read_only=True)

    class Meta(VisitOutSerializer.Meta):
        fields = VisitOutSerializer.Meta.fields + ['attachments']


class VisitSummarySerializer(serializers.ModelSerializer):
    """What a visitor may read about their own completed visit."""
    campName = serializers.CharField(source='camp.name')
    patientId = serializers.CharField(source='visitor.patient_id')
    name = serializers.CharField(source='visitor.name')
    doctorName = serializers.CharField(source='doctor.name', allow_null=True)
    consultationTime = serializers.DateTimeField(source='consultation_time')
    diagnosis = serializers.CharField(source='consultation.diagnosis')
    treatmentPlan = serializers.CharField(source='consultation.treatment_plan')
    prescriptions = serializers.JSONField(source='consultation.prescriptions')
    followUpAdvice = serializers.CharField(source='consultation.follow_up_advice')

    class Meta:
        model = Visit
        fields = ['id', 'campName', 'patientId', 'name', 'status', 'doctorName', 'consultationTime',
                  'diagnosis', 'treatmentPlan', 'prescriptions', 'followUpAdvice']
