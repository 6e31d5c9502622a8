import uuid

from django.core.exceptions import ValidationError
from django.db import models


class Location(models.Model):
    class LocationType(models.TextChoices):
        STORE = "tienda", "Tienda"
        WAREHOUSE = "bodega", "Bodega"
        KIOSK = "kiosk", "Kiosko"

    id = models.BigAutoField(primary_key=True)
    name = models.CharField(max_length=255)
    code = models.CharField(max_length=64, unique=True)
    description = models.TextField(null=True, blank=True)
    address = models.TextField(null=True, blank=True)
    location_type = models.CharField(max_length=16, choices=LocationType.choices, default=LocationType.STORE)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["location_type", "is_active"], name="location_type_active_idx"),
        ]

    def __str__(self):
        return f"{self.code} - {self.name}"


class Product(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    barcode = models.CharField(max_length=128, null=True, blank=True)
    price = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    minimum_stock = models.DecimalField(max_digits=14, decimal_places=3, default=0)
    # Denormalized total across all locations; the movement ledger is authoritative.
    stock_quantity = models.DecimalField(max_digits=14, decimal_places=3, default=0)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["barcode"], name="product_barcode_idx"),
            models.Index(fields=["is_active"], name="product_active_idx"),
        ]

    def __str__(self):
        return self.name


class ProductLot(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="lots")
    lot_code = models.CharField(max_length=64)
    expires_on = models.DateField(null=True, blank=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["product", "lot_code"], name="uniq_lot_code_per_product"),
        ]
        indexes = [
            models.Index(fields=["product", "expires_on"], name="lot_product_expiry_idx"),
        ]

    def __str__(self):
        return f"{self.lot_code} ({self.product_id})"


class StockMovement(models.Model):
    """Append-only ledger entry; stock levels are sums of ``qty``."""

    class Type(models.TextChoices):
        RECEIPT = "RECEIPT", "Receipt"
        SALE = "SALE", "Sale"
        TRANSFER = "TRANSFER", "Transfer"
        ADJUSTMENT = "ADJUSTMENT", "Adjustment"
        RETURN = "RETURN", "Return"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="stock_movements")
    qty = models.DecimalField(max_digits=14, decimal_places=3)
    type = models.CharField(max_length=16, choices=Type.choices)
    location = models.ForeignKey(Location, on_delete=models.PROTECT, null=True, blank=True, related_name="stock_movements")
    # Nullable for historical rows only; every workflow sets it.
    lot = models.ForeignKey(ProductLot, on_delete=models.PROTECT, null=True, blank=True, related_name="stock_movements")
    ref = models.CharField(max_length=128, null=True, blank=True)
    reason = models.TextField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=["product", "location"], name="movement_product_loc_idx"),
            models.Index(fields=["created_at"], name="movement_created_idx"),
            models.Index(fields=["type", "created_at"], name="movement_type_created_idx"),
            models.Index(fields=["lot"], name="movement_lot_idx"),
            models.Index(fields=["ref"], name="movement_ref_idx"),
        ]

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError("Stock movements are immutable; record a new movement instead.")
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError("Stock movements are immutable and cannot be deleted.")

    def __str__(self):
        return f"{self.type} {self.qty} of {self.product_id}"
