# lis_core/patients/serializers.py
from rest_framework import serializers

from lis_core.catalog.models import Sex
from lis_core.patients.models import Patient


class PatientDraftSerializer(serializers.Serializer):
    """A patient typed in at the desk; registered (or matched by DNI) on submit."""
    dni = serializers.CharField(max_length=16)
    first_name = serializers.CharField(max_length=128)
    last_name = serializers.CharField(max_length=128)
    birth_date = serializers.DateField(required=False, allow_null=True)
    sex = serializers.ChoiceField(choices=Sex.choices, required=False, allow_blank=True, default="")
    phone = serializers.CharField(max_length=32, required=False, allow_blank=True, default="")


class PatientSummarySerializer(serializers.ModelSerializer):
    full_name = serializers.CharField(read_only=True)

    class Meta:
        model = Patient
        fields = ["id", "code", "dni", "full_name", "birth_date", "sex", "phone"]
        read_only_fields = fields
