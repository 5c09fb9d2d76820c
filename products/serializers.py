from rest_framework import serializers

from .models import ImportRun, Product, ProductPosLink


class ProductPosLinkSerializer(serializers.ModelSerializer):
    class Meta:
        model = ProductPosLink
        fields = ["id", "integration", "source", "pos_item_id", "pos_variation_id"]
        read_only_fields = fields


class ProductSerializer(serializers.ModelSerializer):
    name = serializers.CharField(max_length=255, trim_whitespace=True)
    sku = serializers.CharField(max_length=255, required=False, allow_blank=True, trim_whitespace=True)
    upc = serializers.CharField(max_length=64, required=False, allow_blank=True, trim_whitespace=True)
    pos_links = ProductPosLinkSerializer(many=True, read_only=True)

    class Meta:
        model = Product
        fields = [
            "id",
            "name",
            "sku",
            "upc",
            "retail_price_cents",
            "origin",
            "active",
            "pos_links",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "origin", "pos_links", "created_at", "updated_at"]

    def validate_name(self, value: str) -> str:
        trimmed = value.strip()
        if not trimmed:
            raise serializers.ValidationError("Name is required.")
        return trimmed

    def validate_retail_price_cents(self, value):
        if value is not None and value < 0:
            raise serializers.ValidationError("Price cannot be negative.")
        return value


class ImportRunSerializer(serializers.ModelSerializer):
    class Meta:
        model = ImportRun
        fields = [
            "id",
            "integration",
            "status",
            "cursor",
            "processed_count",
            "created_count",
            "updated_count",
            "failed_count",
            "errors",
            "task_id",
            "segments",
            "started_at",
            "finished_at",
            "last_progress_at",
        ]
        read_only_fields = fields


class ImportRequestSerializer(serializers.Serializer):
    MODE_START = "START"
    MODE_RESUME = "RESUME"

    integrationId = serializers.UUIDField()
    mode = serializers.ChoiceField(choices=[MODE_START, MODE_RESUME], default=MODE_START)
    runId = serializers.UUIDField(required=False, allow_null=True)

    def validate(self, attrs):
        if attrs["mode"] == self.MODE_RESUME and not attrs.get("runId"):
            raise serializers.ValidationError({"runId": "runId is required for RESUME."})
        return attrs


class AbortRequestSerializer(serializers.Serializer):
    runId = serializers.UUIDField(required=False, allow_null=True)
    integrationId = serializers.UUIDField(required=False, allow_null=True)

    def validate(self, attrs):
        if not attrs.get("runId") and not attrs.get("integrationId"):
            raise serializers.ValidationError("Either runId or integrationId is required.")
        return attrs


class WatchdogRequestSerializer(serializers.Serializer):
    thresholdMinutes = serializers.IntegerField(required=False, min_value=1)


class ProductBackupSerializer(serializers.ModelSerializer):
    class Meta:
        model = Product
        fields = "__all__"


class ProductPosLinkBackupSerializer(serializers.ModelSerializer):
    class Meta:
        model = ProductPosLink
        fields = "__all__"
