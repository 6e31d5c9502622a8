from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.utils import timezone

from inventory.models import Location, Product, StockMovement
from inventory.services import ReceivedItem, receive_inventory


class Command(BaseCommand):
    help = "Seed demo users, locations, products and opening stock for local development."

    def handle(self, *args, **options):
        User = get_user_model()

        for username, role, password in [
            ("admin", User.Role.ADMIN, "admin1234"),
            ("supervisor", User.Role.SUPERVISOR, "supervisor1234"),
            ("cashier", User.Role.CASHIER, "cashier1234"),
        ]:
            user, created = User.objects.get_or_create(
                username=username,
                defaults={
                    "email": f"{username}@example.com",
                    "role": role,
                    "is_staff": role == User.Role.ADMIN,
                    "is_superuser": role == User.Role.ADMIN,
                    "is_active": True,
                },
            )
            if created:
                user.set_password(password)
                user.save(update_fields=["password"])

        warehouse, _ = Location.objects.get_or_create(
            code="BOD-01",
            defaults={"name": "Bodega Central", "location_type": Location.LocationType.WAREHOUSE},
        )
        store, _ = Location.objects.get_or_create(
            code="TDA-01",
            defaults={"name": "Tienda Principal", "location_type": Location.LocationType.STORE},
        )

        cola, _ = Product.objects.get_or_create(
            barcode="7501000000011",
            defaults={"name": "Cola 330ml", "price": Decimal("1.50"), "minimum_stock": Decimal("20")},
        )
        chips, _ = Product.objects.get_or_create(
            barcode="7501000000028",
            defaults={"name": "Potato Chips", "price": Decimal("2.00"), "minimum_stock": Decimal("10")},
        )

        if StockMovement.objects.filter(ref="SEED-OPENING").exists():
            self.stdout.write(self.style.WARNING("Opening stock already seeded; skipping receipts."))
        else:
            expires_on = timezone.localdate() + timedelta(days=180)
            receive_inventory(
                [
                    ReceivedItem(product_id=cola.id, quantity=Decimal("120"), lot_code="SEED-COLA", expires_on=expires_on),
                    ReceivedItem(product_id=chips.id, quantity=Decimal("60"), lot_code="SEED-CHIPS", expires_on=expires_on),
                ],
                reference="SEED-OPENING",
                notes="Demo opening stock",
                location_id=warehouse.id,
            )

        self.stdout.write(self.style.SUCCESS("Demo data seeded successfully."))
        self.stdout.write("Credentials: admin/admin1234, supervisor/supervisor1234, cashier/cashier1234")
        self.stdout.write(f"Locations: {warehouse.code} (id={warehouse.id}), {store.code} (id={store.id})")
