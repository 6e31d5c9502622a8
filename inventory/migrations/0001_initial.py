import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Location",
            fields=[
                ("id", models.BigAutoField(primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=255)),
                ("code", models.CharField(max_length=64, unique=True)),
                ("description", models.TextField(blank=True, null=True)),
                ("address", models.TextField(blank=True, null=True)),
                (
                    "location_type",
                    models.CharField(
                        choices=[("tienda", "Tienda"), ("bodega", "Bodega"), ("kiosk", "Kiosko")],
                        default="tienda",
                        max_length=16,
                    ),
                ),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "indexes": [
                    models.Index(fields=["location_type", "is_active"], name="location_type_active_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Product",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=255)),
                ("barcode", models.CharField(blank=True, max_length=128, null=True)),
                ("price", models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ("minimum_stock", models.DecimalField(decimal_places=3, default=0, max_digits=14)),
                ("stock_quantity", models.DecimalField(decimal_places=3, default=0, max_digits=14)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "indexes": [
                    models.Index(fields=["barcode"], name="product_barcode_idx"),
                    models.Index(fields=["is_active"], name="product_active_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="ProductLot",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("lot_code", models.CharField(max_length=64)),
                ("expires_on", models.DateField(blank=True, null=True)),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="lots",
                        to="inventory.product",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["product", "expires_on"], name="lot_product_expiry_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("product", "lot_code"), name="uniq_lot_code_per_product"),
                ],
            },
        ),
        migrations.CreateModel(
            name="StockMovement",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("qty", models.DecimalField(decimal_places=3, max_digits=14)),
                (
                    "type",
                    models.CharField(
                        choices=[
                            ("RECEIPT", "Receipt"),
                            ("SALE", "Sale"),
                            ("TRANSFER", "Transfer"),
                            ("ADJUSTMENT", "Adjustment"),
                            ("RETURN", "Return"),
                        ],
                        max_length=16,
                    ),
                ),
                ("ref", models.CharField(blank=True, max_length=128, null=True)),
                ("reason", models.TextField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "location",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="stock_movements",
                        to="inventory.location",
                    ),
                ),
                (
                    "lot",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="stock_movements",
                        to="inventory.productlot",
                    ),
                ),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="stock_movements",
                        to="inventory.product",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["product", "location"], name="movement_product_loc_idx"),
                    models.Index(fields=["created_at"], name="movement_created_idx"),
                    models.Index(fields=["type", "created_at"], name="movement_type_created_idx"),
                    models.Index(fields=["lot"], name="movement_lot_idx"),
                    models.Index(fields=["ref"], name="movement_ref_idx"),
                ],
            },
        ),
    ]
