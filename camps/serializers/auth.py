from rest_framework import serializers

from camps.models import User


class LoginSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(trim_whitespace=False)
    campSlug = serializers.SlugField(required=False, allow_blank=True, allow_null=True)

    def validate_password(self, v):
        if not v:
            raise serializers.ValidationError('Password is required.')
        return v


class RefreshSerializer(serializers.Serializer):
    refresh = serializers.CharField()


class UserSummarySerializer(serializers.ModelSerializer):
    campId = serializers.UUIDField(source='camp_id', allow_null=True, read_only=True)

    class Meta:
        model = User
        fields = ['id', 'name', 'email', 'role', 'campId']


class ChangePasswordSerializer(serializers.Serializer):
    currentPassword = serializers.CharField(trim_whitespace=False)
    newPassword = serializers.CharField(trim_whitespace=False, min_length=8, max_length=128)


class PasswordResetSerializer(serializers.Serializer):
    passwordMode = serializers.ChoiceField(choices=['auto', 'manual'], required=False, default='auto')
    manualPassword = serializers.CharField(trim_whitespace=False, required=False, allow_blank=True,
                                           max_length=128)

    def validate(self, attrs):
        if attrs['passwordMode'] == 'manual' and not attrs.get('manualPassword'):
            raise serializers.ValidationError({'manualPassword': 'Required when passwordMode is manual.'})
        if attrs['passwordMode'] == 'auto':
            attrs.pop('manualPassword', None)
        return attrs
