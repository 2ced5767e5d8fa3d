"""Payment request serializers.

Every payment call names its build with ``build_id``.  Validation here is
shape only; method rules live in the connectors.
"""

from __future__ import annotations

from rest_framework import serializers

from modules.payments.constants import Milestone, PaymentMethod, PaymentStep, PlanType


class BuildRefSerializer(serializers.Serializer):
    build_id = serializers.UUIDField()


class SelectPlanSerializer(BuildRefSerializer):
    method = serializers.ChoiceField(choices=PaymentMethod.choices)
    plan_type = serializers.ChoiceField(choices=PlanType.choices)
    plan_percent = serializers.DecimalField(
        max_digits=5,
        decimal_places=2,
        min_value=1,
        max_value=100,
        required=False,
        allow_null=True,
    )


class SessionStepSerializer(BuildRefSerializer):
    step = serializers.ChoiceField(choices=PaymentStep.choices)


class SaveAchMethodSerializer(BuildRefSerializer):
    payment_method_id = serializers.CharField(max_length=255)
    mandate_accepted = serializers.BooleanField(required=False, default=False)
    account_id = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    balance_cents = serializers.IntegerField(required=False, allow_null=True)


class BillingAddressSerializer(serializers.Serializer):
    street = serializers.CharField(required=False, allow_blank=True, default="")
    city = serializers.CharField(required=False, allow_blank=True, default="")
    state = serializers.CharField(required=False, allow_blank=True, default="")
    zip = serializers.CharField(required=False, allow_blank=True, default="")


class PayerInfoSerializer(serializers.Serializer):
    full_legal_name = serializers.CharField(required=False, allow_blank=True, default="")
    email = serializers.CharField(required=False, allow_blank=True, default="")
    phone = serializers.CharField(required=False, allow_blank=True, default="")
    preferred_transfer_type = serializers.CharField(required=False, allow_blank=True, default="")
    planned_send_date = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    billing_address = BillingAddressSerializer(required=False)


class BankTransferIntentsSerializer(BuildRefSerializer):
    payer_info = PayerInfoSerializer()
    commitments = serializers.DictField(child=serializers.BooleanField(), required=False, default=dict)
    plan_type = serializers.ChoiceField(choices=PlanType.choices, required=False, allow_null=True)
    plan_percent = serializers.DecimalField(
        max_digits=5, decimal_places=2, min_value=1, max_value=100, required=False, allow_null=True
    )


class VerifyCardSerializer(BuildRefSerializer):
    payment_method_id = serializers.CharField(max_length=255)
    cardholder_name = serializers.CharField(required=False, allow_blank=True, default="")
    billing_address = BillingAddressSerializer(required=False)


class SaveCardMethodSerializer(BuildRefSerializer):
    payment_method_id = serializers.CharField(max_length=255)
    authorizations = serializers.DictField(
        child=serializers.BooleanField(), required=False, default=dict
    )


class MarkReadySerializer(BuildRefSerializer):
    mandate_accepted = serializers.BooleanField(required=False, allow_null=True, default=None)


class ProcessCardPaymentSerializer(BuildRefSerializer):
    milestone = serializers.ChoiceField(choices=Milestone.choices)


class TransferIntentSerializer(serializers.Serializer):
    id = serializers.UUIDField()
    milestone = serializers.CharField()
    expected_amount_cents = serializers.IntegerField()
    status = serializers.CharField()
