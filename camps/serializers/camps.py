from rest_framework import serializers

from camps.models import Camp, Role, User


class StaffInSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    email = serializers.EmailField()
    phone = serializers.CharField(required=False, allow_blank=True, max_length=32, default='')
    specialty = serializers.CharField(required=False, allow_blank=True, max_length=255, default='')
    password = serializers.CharField(required=False, allow_blank=True, min_length=8, write_only=True)

    def validate_email(self, v):
        return v.strip().lower()


class CampWriteSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True)
    logoUrl = serializers.URLField(source='logo_url', required=False, allow_blank=True, max_length=512)
    backgroundImageUrl = serializers.URLField(source='background_image_url', required=False, allow_blank=True,
                                              max_length=512)
    venue = serializers.CharField(max_length=255)
    startTime = serializers.DateTimeField(source='start_time')
    endTime = serializers.DateTimeField(source='end_time')
    contactInfo = serializers.CharField(source='contact_info', required=False, allow_blank=True)
    hospitalName = serializers.CharField(source='hospital_name', max_length=255)
    hospitalAddress = serializers.CharField(source='hospital_address', required=False, allow_blank=True)
    hospitalPhone = serializers.CharField(source='hospital_phone', required=False, allow_blank=True, max_length=32)
    hospitalEmail = serializers.EmailField(source='hospital_email', required=False, allow_blank=True)
    slug = serializers.SlugField(required=False, allow_blank=True, max_length=64)

    def validate(self, attrs):
        start, end = attrs.get('start_time'), attrs.get('end_time')
        if start and end and end < start:
            raise serializers.ValidationError({'endTime': 'End time must not be before start time.'})
        return attrs


class CampCreateSerializer(CampWriteSerializer):
    campHead = StaffInSerializer()
    doctors = StaffInSerializer(many=True, required=False, default=list)

    def validate(self, attrs):
        attrs = super().validate(attrs)
        emails = [attrs['campHead']['email']] + [d['email'] for d in attrs.get('doctors', [])]
        if len(set(emails)) != len(emails):
            raise serializers.ValidationError({'doctors': 'Staff emails must be unique.'})
        return attrs


class CampPublicSerializer(serializers.ModelSerializer):
    logoUrl = serializers.CharField(source='logo_url')
    backgroundImageUrl = serializers.CharField(source='background_image_url')
    startTime = serializers.DateTimeField(source='start_time')
    endTime = serializers.DateTimeField(source='end_time')
    contactInfo = serializers.CharField(source='contact_info')
    hospitalName = serializers.CharField(source='hospital_name')
    hospitalAddress = serializers.CharField(source='hospital_address')
    hospitalPhone = serializers.CharField(source='hospital_phone')
    hospitalEmail = serializers.CharField(source='hospital_email')

    class Meta:
        model = Camp
        fields = ['slug', 'name', 'description', 'logoUrl', 'backgroundImageUrl', 'venue', 'startTime', 'endTime',
                  'contactInfo', 'hospitalName', 'hospitalAddress', 'hospitalPhone', 'hospitalEmail']


class CampOutSerializer(CampPublicSerializer):
    createdAt = serializers.DateTimeField(source='created_at')

    class Meta(CampPublicSerializer.Meta):
        fields = ['id'] + CampPublicSerializer.Meta.fields + ['createdAt']


class StaffOutSerializer(serializers.ModelSerializer):
    isActive = serializers.BooleanField(source='is_active')
    campId = serializers.UUIDField(source='camp_id', allow_null=True, read_only=True)
    createdAt = serializers.DateTimeField(source='date_joined', read_only=True)

    class Meta:
        model = User
        fields = ['id', 'name', 'email', 'phone', 'specialty', 'role', 'campId', 'isActive', 'createdAt']


class StaffQuerySerializer(serializers.Serializer):
    role = serializers.ChoiceField(choices=Role.choices, required=False)
    campId = serializers.UUIDField(required=False)
    page = serializers.IntegerField(required=False, min_value=1, default=1)
    limit = serializers.IntegerField(required=False, min_value=1, max_value=200, default=50)
