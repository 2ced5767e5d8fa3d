"""Build DRF serializers for API input/output.

Business logic lives in ``BuildService``; serializers only validate shape
and produce the DTOs the service consumes.
"""

from __future__ import annotations

from django.core.exceptions import ObjectDoesNotExist
from django.core.validators import RegexValidator
from rest_framework import serializers

from modules.builds.constants import CheckoutStep
from modules.builds.models import Build

ZIP_VALIDATOR = RegexValidator(r"^\d{5}(-\d{4})?$", "Enter a valid ZIP code.")

# ---------------------------------------------------------------------------
# Input Serializers
# ---------------------------------------------------------------------------


class OptionSerializer(serializers.Serializer):
    id = serializers.CharField(required=False, allow_blank=True, default="")
    name = serializers.CharField(required=False, allow_blank=True, default="")
    price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)
    quantity = serializers.IntegerField(min_value=0, required=False, allow_null=True)


class BuyerInfoSerializer(serializers.Serializer):
    first_name = serializers.CharField(required=False, allow_blank=True, max_length=100)
    last_name = serializers.CharField(required=False, allow_blank=True, max_length=100)
    email = serializers.EmailField(required=False, allow_blank=True)
    phone = serializers.CharField(required=False, allow_blank=True, max_length=40)
    address = serializers.CharField(required=False, allow_blank=True, max_length=300)
    city = serializers.CharField(required=False, allow_blank=True, max_length=100)
    state = serializers.CharField(required=False, allow_blank=True, max_length=50)
    zip = serializers.CharField(
        required=False, allow_blank=True, validators=[ZIP_VALIDATOR]
    )
    delivery_address = serializers.CharField(
        required=False, allow_blank=True, max_length=500
    )


class CreateBuildSerializer(serializers.Serializer):
    model_slug = serializers.SlugField(max_length=100)
    model_name = serializers.CharField(required=False, allow_blank=True, default="")
    name = serializers.CharField(required=False, allow_blank=True, default="")
    base_price_cents = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=0
    )
    options = OptionSerializer(many=True, required=False, default=list)
    delivery_fee_cents = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=0, required=False, default=0
    )
    buyer_info = BuyerInfoSerializer(required=False)


class UpdateBuildSerializer(serializers.Serializer):
    model_slug = serializers.SlugField(max_length=100, required=False)
    model_name = serializers.CharField(required=False, allow_blank=True)
    name = serializers.CharField(required=False, allow_blank=True)
    base_price_cents = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=0, required=False
    )
    options = OptionSerializer(many=True, required=False)
    delivery_fee_cents = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=0, required=False
    )
    buyer_info = BuyerInfoSerializer(required=False)


class RenameBuildSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=200, allow_blank=False)


class CheckoutStepSerializer(serializers.Serializer):
    step = serializers.IntegerField()


class NavigationSerializer(serializers.Serializer):
    target = serializers.CharField()
    current = serializers.CharField()
    is_signed_in = serializers.BooleanField(required=False, default=True)


# ---------------------------------------------------------------------------
# Output Serializers (Read)
# ---------------------------------------------------------------------------


class BuildSerializer(serializers.ModelSerializer):
    step_label = serializers.SerializerMethodField()
    payment = serializers.SerializerMethodField()

    class Meta:
        model = Build
        fields = [
            "id",
            "model_slug",
            "model_name",
            "name",
            "version",
            "base_price_cents",
            "options",
            "delivery_fee_cents",
            "buyer_info",
            "step",
            "step_label",
            "primary",
            "status",
            "payment",
            "contract_signed_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_step_label(self, obj: Build) -> str:
        return CheckoutStep(obj.step).label

    def get_payment(self, obj: Build) -> dict | None:
        try:
            payment = obj.payment  # type: ignore[attr-defined]
        except ObjectDoesNotExist:
            return None
        return {
            "method": payment.method,
            "plan_type": payment.plan_type,
            "ready": payment.ready,
            "session_step": payment.session_step,
        }


class BuildListSerializer(serializers.ModelSerializer):
    class Meta:
        model = Build
        fields = [
            "id",
            "model_slug",
            "model_name",
            "name",
            "step",
            "primary",
            "status",
            "updated_at",
        ]
        read_only_fields = fields
