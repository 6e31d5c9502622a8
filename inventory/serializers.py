from rest_framework import serializers
from rest_framework.exceptions import NotFound

from inventory.models import Location, Product, ProductLot, StockMovement

QUANTITY_FIELD_KWARGS = {"max_digits": 14, "decimal_places": 3}


def _quantity_field(**kwargs):
    return serializers.DecimalField(**QUANTITY_FIELD_KWARGS, **kwargs)


class ProductSerializer(serializers.ModelSerializer):
    uuid = serializers.UUIDField(source="id", read_only=True)
    stockQuantity = serializers.DecimalField(source="stock_quantity", read_only=True, **QUANTITY_FIELD_KWARGS)
    minimumStock = serializers.DecimalField(source="minimum_stock", read_only=True, **QUANTITY_FIELD_KWARGS)
    isActive = serializers.BooleanField(source="is_active", read_only=True)

    class Meta:
        model = Product
        fields = ["uuid", "name", "barcode", "price", "stockQuantity", "minimumStock", "isActive"]
        read_only_fields = fields


class LocationSerializer(serializers.ModelSerializer):
    locationType = serializers.ChoiceField(source="location_type", choices=Location.LocationType.choices)
    isActive = serializers.BooleanField(source="is_active", required=False, default=True)
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)
    updatedAt = serializers.DateTimeField(source="updated_at", read_only=True)

    class Meta:
        model = Location
        fields = ["id", "name", "code", "description", "address", "locationType", "isActive", "createdAt", "updatedAt"]
        read_only_fields = ["id", "createdAt", "updatedAt"]
        extra_kwargs = {
            "description": {"required": False, "allow_null": True, "allow_blank": True},
            "address": {"required": False, "allow_null": True, "allow_blank": True},
        }


class LocationUpsertSerializer(LocationSerializer):
    """Creates a location, or replaces the one named by ``id``."""

    id = serializers.IntegerField(required=False, allow_null=True, min_value=1)

    class Meta(LocationSerializer.Meta):
        read_only_fields = ["createdAt", "updatedAt"]

    def validate_id(self, value):
        # Runs before ``code`` so its unique check excludes the row being updated.
        if value is None:
            return None
        self.instance = Location.objects.filter(id=value).first()
        if self.instance is None:
            raise NotFound(f"Location with ID {value} not found.")
        return value

    def create(self, validated_data):
        validated_data.pop("id", None)
        return super().create(validated_data)

    def update(self, instance, validated_data):
        validated_data.pop("id", None)
        return super().update(instance, validated_data)


class ProductLotSerializer(serializers.ModelSerializer):
    productUuid = serializers.UUIDField(source="product_id", read_only=True)
    lotCode = serializers.CharField(source="lot_code", read_only=True)
    expiresOn = serializers.DateField(source="expires_on", read_only=True, allow_null=True)

    class Meta:
        model = ProductLot
        fields = ["id", "productUuid", "lotCode", "expiresOn"]
        read_only_fields = fields


class ProductLotWithProductSerializer(ProductLotSerializer):
    product = ProductSerializer(read_only=True)

    class Meta(ProductLotSerializer.Meta):
        fields = ProductLotSerializer.Meta.fields + ["product"]
        read_only_fields = fields


class LotBalanceSerializer(ProductLotSerializer):
    balance = serializers.DecimalField(read_only=True, **QUANTITY_FIELD_KWARGS)

    class Meta(ProductLotSerializer.Meta):
        fields = ProductLotSerializer.Meta.fields + ["balance"]
        read_only_fields = fields


class AllocationSerializer(serializers.Serializer):
    lotId = serializers.UUIDField(source="lot_id")
    lotCode = serializers.CharField(source="lot_code")
    quantity = _quantity_field()


class StockMovementSerializer(serializers.ModelSerializer):
    productUuid = serializers.UUIDField(source="product_id", read_only=True)
    locationId = serializers.IntegerField(source="location_id", read_only=True, allow_null=True)
    lotId = serializers.UUIDField(source="lot_id", read_only=True, allow_null=True)
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)

    class Meta:
        model = StockMovement
        fields = ["id", "productUuid", "qty", "type", "locationId", "lotId", "ref", "reason", "createdAt"]
        read_only_fields = fields


class StockMovementDetailSerializer(StockMovementSerializer):
    product = ProductSerializer(read_only=True)
    location = LocationSerializer(read_only=True, allow_null=True)
    lot = ProductLotSerializer(read_only=True, allow_null=True)

    class Meta(StockMovementSerializer.Meta):
        fields = StockMovementSerializer.Meta.fields + ["product", "location", "lot"]
        read_only_fields = fields


class KardexEntrySerializer(serializers.Serializer):
    id = serializers.UUIDField()
    createdAt = serializers.DateTimeField()
    type = serializers.CharField()
    qty = _quantity_field()
    ref = serializers.CharField(allow_null=True)
    reason = serializers.CharField(allow_null=True)
    productUuid = serializers.UUIDField()
    productName = serializers.CharField()
    productBarcode = serializers.CharField(allow_null=True)
    locationId = serializers.IntegerField(allow_null=True)
    locationName = serializers.CharField(allow_null=True)
    lotId = serializers.UUIDField(allow_null=True)
    lotCode = serializers.CharField(allow_null=True)
    lotExpiresOn = serializers.DateField(allow_null=True)


class StockAdjustmentSerializer(serializers.Serializer):
    productUuid = serializers.UUIDField()
    quantity = _quantity_field()
    reason = serializers.CharField(min_length=1, trim_whitespace=True)
    lotId = serializers.UUIDField()

    def validate_quantity(self, value):
        if value == 0:
            raise serializers.ValidationError("Quantity cannot be zero.")
        return value


class StockTransferSerializer(serializers.Serializer):
    productUuid = serializers.UUIDField()
    quantity = _quantity_field()
    fromLocationId = serializers.IntegerField(min_value=1)
    toLocationId = serializers.IntegerField(min_value=1)
    reference = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=128)
    lotId = serializers.UUIDField()

    def validate_quantity(self, value):
        if value <= 0:
            raise serializers.ValidationError("Transfer quantity must be positive.")
        return value

    def validate(self, attrs):
        if attrs["fromLocationId"] == attrs["toLocationId"]:
            raise serializers.ValidationError(
                {"toLocationId": ["Origin and destination locations cannot be the same."]}
            )
        return attrs


class ReceivedItemSerializer(serializers.Serializer):
    productUuid = serializers.UUIDField()
    quantity = _quantity_field()
    lotCode = serializers.CharField(required=False, allow_null=True, min_length=1, max_length=64)
    expiresOn = serializers.DateField(required=False, allow_null=True)

    def validate_quantity(self, value):
        if value <= 0:
            raise serializers.ValidationError("Quantity must be a positive number.")
        return value

    def validate(self, attrs):
        if attrs.get("expiresOn") and not attrs.get("lotCode"):
            raise serializers.ValidationError(
                {"expiresOn": ["An expiration date can only be provided if a lot code is also present."]}
            )
        return attrs


class InventoryReceiptSerializer(serializers.Serializer):
    items = ReceivedItemSerializer(many=True)
    reference = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=128)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)

    def validate_items(self, value):
        if not value:
            raise serializers.ValidationError("At least one item must be received.")
        return value


class StockMovementCreateSerializer(serializers.Serializer):
    productUuid = serializers.UUIDField()
    qty = _quantity_field()
    type = serializers.ChoiceField(choices=StockMovement.Type.choices)
    locationId = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    lotId = serializers.UUIDField()
    ref = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=128)

    def validate_qty(self, value):
        if value == 0:
            raise serializers.ValidationError("Quantity cannot be zero.")
        return value


class ProductLotUpsertSerializer(serializers.Serializer):
    id = serializers.UUIDField(required=False, allow_null=True)
    productUuid = serializers.UUIDField()
    lotCode = serializers.CharField(required=False, allow_null=True, min_length=1, max_length=64)
    expiresOn = serializers.DateField(required=False, allow_null=True)


class KardexQuerySerializer(serializers.Serializer):
    productUuid = serializers.UUIDField(required=False)
    locationId = serializers.IntegerField(required=False, min_value=1)
    to = serializers.DateTimeField(required=False)
    type = serializers.ChoiceField(required=False, choices=StockMovement.Type.choices)

    def get_fields(self):
        fields = super().get_fields()
        # "from" is a keyword, so it cannot be declared as a class attribute.
        fields["from"] = serializers.DateTimeField(required=False)
        return fields

    def validate(self, attrs):
        date_from, date_to = attrs.get("from"), attrs.get("to")
        if date_from and date_to and date_from > date_to:
            raise serializers.ValidationError({"from": ["'from' must not be later than 'to'."]})
        return attrs


class StockAvailableQuerySerializer(serializers.Serializer):
    productUuid = serializers.UUIDField()
    locationId = serializers.IntegerField(min_value=1)


class LotsAvailableQuerySerializer(serializers.Serializer):
    productUuid = serializers.UUIDField()
    locationId = serializers.IntegerField(required=False, min_value=1)
    quantity = _quantity_field(required=False)


class AdminStockQuerySerializer(serializers.Serializer):
    productId = serializers.UUIDField(required=False)


class StockMovementQuerySerializer(serializers.Serializer):
    productUuid = serializers.UUIDField(required=False)
    locationId = serializers.IntegerField(required=False, min_value=1)
    lotId = serializers.UUIDField(required=False)
    type = serializers.ChoiceField(required=False, choices=StockMovement.Type.choices)


class ProductLotQuerySerializer(serializers.Serializer):
    productUuid = serializers.UUIDField(required=False)
