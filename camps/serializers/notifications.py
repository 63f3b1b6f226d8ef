from rest_framework import serializers

from camps.models import MessageKind, MessageStatus, NotificationLogEntry


class NotificationQuerySerializer(serializers.Serializer):
    kind = serializers.ChoiceField(choices=MessageKind.choices, required=False)
    status = serializers.ChoiceField(choices=MessageStatus.choices, required=False)
    visitorId = serializers.UUIDField(required=False)
    page = serializers.IntegerField(required=False, min_value=1, default=1)
    limit = serializers.IntegerField(required=False, min_value=1, max_value=200, default=50)


class SendNotificationSerializer(serializers.Serializer):
    visitorId = serializers.UUIDField()
    kind = serializers.ChoiceField(choices=[MessageKind.APPOINTMENT_REMINDER, MessageKind.CUSTOM])
    text = serializers.CharField(max_length=3500)


class NotificationLogOutSerializer(serializers.ModelSerializer):
    visitorId = serializers.UUIDField(source='visitor_id', read_only=True)
    patientId = serializers.CharField(source='visitor.patient_id', read_only=True)
    deliveredTo = serializers.CharField(source='delivered_to')
    testMode = serializers.BooleanField(source='test_mode')
    sentAt = serializers.DateTimeField(source='sent_at')
    errorMessage = serializers.CharField(source='error_message')
    createdAt = serializers.DateTimeField(source='created_at')

    class Meta:
        model = NotificationLogEntry
        fields = ['id', 'visitorId', 'patientId', 'kind', 'status', 'message', 'deliveredTo', 'testMode',
                  'sentAt', 'errorMessage', 'createdAt']


class WebhookSetupSerializer(serializers.Serializer):
    webhookUrl = serializers.URLField()
