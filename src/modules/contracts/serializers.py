"""Contract request serializers."""

from __future__ import annotations

from rest_framework import serializers


class ContractBuildSerializer(serializers.Serializer):
    build_id = serializers.UUIDField()


class StartPackSerializer(ContractBuildSerializer):
    co_buyer_enabled = serializers.BooleanField(required=False, default=False)


class DocuSealEventSerializer(serializers.Serializer):
    """Loose shape of a DocuSeal webhook body; unknown keys are ignored."""

    event_type = serializers.CharField(required=False, allow_blank=True, default="")
    data = serializers.DictField(required=False, default=dict)
