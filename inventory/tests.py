from datetime import date, datetime, timezone as dt_timezone
from decimal import Decimal
from io import StringIO

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.management import call_command
from django.core.management.base import CommandError
from django.db import connection
from django.test import TestCase
from django.test.utils import CaptureQueriesContext
from rest_framework.test import APIClient

from core.models import AuditLog
from inventory.exceptions import InsufficientStock, InventoryRuleViolation
from inventory.models import Location, Product, ProductLot, StockMovement
from inventory.services import (
    ReceivedItem,
    adjust_stock,
    allocate_fefo,
    get_lots_with_balance,
    get_product_stock,
    get_stock_balance,
    receive_inventory,
    signed_quantity,
    transfer_stock,
)


class InventoryTestMixin:
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()

        self.admin = self.user_model.objects.create_user(username="inv-admin", password="pass1234", role="admin")
        self.supervisor = self.user_model.objects.create_user(
            username="inv-supervisor",
            password="pass1234",
            role="supervisor",
        )
        self.cashier = self.user_model.objects.create_user(username="inv-cashier", password="pass1234", role="cashier")

        self.warehouse = Location.objects.create(name="Bodega", code="BOD-1", location_type=Location.LocationType.WAREHOUSE)
        self.store = Location.objects.create(name="Tienda", code="TDA-1", location_type=Location.LocationType.STORE)
        self.product = Product.objects.create(name="Cola 330ml", barcode="750100", price=Decimal("1.50"))

    def receive(self, quantity, *, location=None, lot_code="L1", expires_on=None, product=None):
        result = receive_inventory(
            [
                ReceivedItem(
                    product_id=(product or self.product).id,
                    quantity=Decimal(quantity),
                    lot_code=lot_code,
                    expires_on=expires_on,
                )
            ],
            location_id=(location or self.warehouse).id if location is not False else None,
        )
        return result.movements[0]

    def cached_stock(self, product=None):
        return Product.objects.get(id=(product or self.product).id).stock_quantity


class InventoryLifecycleTests(InventoryTestMixin, TestCase):
    def test_receive_transfer_adjust_keeps_ledger_and_cache_consistent(self):
        self.client.force_authenticate(user=self.supervisor)

        received = self.client.post(
            "/api/v1/inventory/receive/",
            {"items": [{"productUuid": str(self.product.id), "quantity": 100, "lotCode": "L1"}], "reference": "PO-1"},
            format="json",
            HTTP_X_LOCATION_ID=str(self.warehouse.id),
        )
        self.assertEqual(received.status_code, 201)
        self.assertEqual(received.json()["message"], "Inventory received successfully.")
        lot = ProductLot.objects.get(product=self.product, lot_code="L1")

        transferred = self.client.post(
            "/api/v1/admin/inventory/transfer/",
            {
                "productUuid": str(self.product.id),
                "quantity": 30,
                "fromLocationId": self.warehouse.id,
                "toLocationId": self.store.id,
                "lotId": str(lot.id),
            },
            format="json",
        )
        self.assertEqual(transferred.status_code, 201)

        adjusted = self.client.post(
            "/api/v1/admin/inventory/adjust/",
            {"productUuid": str(self.product.id), "quantity": -10, "reason": "Damaged", "lotId": str(lot.id)},
            format="json",
            HTTP_X_LOCATION_ID=str(self.warehouse.id),
        )
        self.assertEqual(adjusted.status_code, 201)
        self.assertEqual(Decimal(adjusted.json()["qty"]), Decimal("-10"))
        self.assertEqual(adjusted.json()["type"], "ADJUSTMENT")

        self.assertEqual(get_stock_balance(self.product.id, self.warehouse.id), Decimal("60"))
        self.assertEqual(get_stock_balance(self.product.id, self.store.id), Decimal("30"))
        self.assertEqual(self.cached_stock(), Decimal("90"))
        self.assertEqual(get_product_stock(self.product.id), self.cached_stock())

        available = self.client.get(
            "/api/v1/inventory/stock-available/",
            {"productUuid": str(self.product.id), "locationId": self.warehouse.id},
        )
        self.assertEqual(available.status_code, 200)
        self.assertEqual(available.json()["availableStock"], 60)

        actions = set(AuditLog.objects.values_list("action", flat=True))
        self.assertEqual(actions, {"stock.receive", "stock.transfer", "stock.adjust"})

    def test_stock_available_is_zero_without_movements(self):
        self.client.force_authenticate(user=self.cashier)

        response = self.client.get(
            "/api/v1/inventory/stock-available/",
            {"productUuid": str(self.product.id), "locationId": self.store.id},
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"availableStock": 0})

    def test_stock_available_requires_product_and_location(self):
        self.client.force_authenticate(user=self.cashier)

        response = self.client.get("/api/v1/inventory/stock-available/", {"productUuid": str(self.product.id)})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "validation_error")
        self.assertIn("locationId", response.json()["errors"])


class TransferTests(InventoryTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.receive("100")
        self.lot = ProductLot.objects.get(product=self.product, lot_code="L1")
        self.client.force_authenticate(user=self.supervisor)

    def _transfer(self, **overrides):
        payload = {
            "productUuid": str(self.product.id),
            "quantity": 30,
            "fromLocationId": self.warehouse.id,
            "toLocationId": self.store.id,
            "lotId": str(self.lot.id),
        }
        payload.update(overrides)
        return self.client.post("/api/v1/admin/inventory/transfer/", payload, format="json")

    def test_transfer_writes_linked_pair_and_leaves_cache_untouched(self):
        response = self._transfer(reference="MOVE-7")

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body["message"], "Inventory transferred successfully.")
        self.assertEqual(body["reference"], "MOVE-7")
        outgoing, incoming = body["movements"]
        self.assertEqual(Decimal(outgoing["qty"]), Decimal("-30"))
        self.assertEqual(outgoing["locationId"], self.warehouse.id)
        self.assertEqual(Decimal(incoming["qty"]), Decimal("30"))
        self.assertEqual(incoming["locationId"], self.store.id)

        legs = StockMovement.objects.filter(type=StockMovement.Type.TRANSFER, ref="MOVE-7")
        self.assertEqual(legs.count(), 2)
        self.assertEqual(sum(leg.qty for leg in legs), Decimal("0"))
        self.assertEqual(self.cached_stock(), Decimal("100"))

    def test_transfer_generates_reference_when_missing(self):
        response = self._transfer()

        self.assertEqual(response.status_code, 201)
        reference = response.json()["reference"]
        self.assertTrue(reference.startswith("TRANS-"))
        self.assertEqual(len(reference), len("TRANS-") + 10)
        self.assertEqual(StockMovement.objects.filter(ref=reference).count(), 2)

    def test_transfer_rejects_insufficient_stock_without_writing(self):
        before = StockMovement.objects.count()

        response = self._transfer(quantity=150)

        self.assertEqual(response.status_code, 409)
        body = response.json()
        self.assertEqual(body["code"], "insufficient_stock")
        self.assertEqual(body["error"], "Insufficient stock in origin location. Available: 100, Requested: 150")
        self.assertEqual(body["errors"]["available"], "100")
        self.assertEqual(StockMovement.objects.count(), before)
        self.assertFalse(AuditLog.objects.filter(action="stock.transfer").exists())

    def test_transfer_rejects_same_location(self):
        response = self._transfer(toLocationId=self.warehouse.id)

        self.assertEqual(response.status_code, 400)
        body = response.json()
        self.assertEqual(body["message"], "Origin and destination locations cannot be the same.")
        self.assertIn("toLocationId", body["errors"])
        self.assertEqual(StockMovement.objects.filter(type=StockMovement.Type.TRANSFER).count(), 0)

    def test_transfer_reports_unknown_locations(self):
        origin = self._transfer(fromLocationId=9999)
        destination = self._transfer(toLocationId=9999)

        self.assertEqual(origin.status_code, 404)
        self.assertEqual(origin.json()["error"], "Origin location with ID 9999 not found.")
        self.assertEqual(destination.status_code, 404)
        self.assertEqual(destination.json()["error"], "Destination location with ID 9999 not found.")

    def test_transfer_rejects_non_positive_quantity(self):
        response = self._transfer(quantity=0)

        self.assertEqual(response.status_code, 400)
        self.assertIn("quantity", response.json()["errors"])

    def test_transfer_service_rejects_lot_of_other_product(self):
        other = Product.objects.create(name="Chips")
        other_lot = ProductLot.objects.create(product=other, lot_code="X1")

        with self.assertRaises(InventoryRuleViolation):
            transfer_stock(
                product_id=self.product.id,
                quantity=Decimal("5"),
                from_location_id=self.warehouse.id,
                to_location_id=self.store.id,
                lot_id=other_lot.id,
            )

    def test_cashier_cannot_transfer(self):
        self.client.force_authenticate(user=self.cashier)

        response = self._transfer()

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["code"], "permission_denied")


class AdjustmentTests(InventoryTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.receive("20")
        self.lot = ProductLot.objects.get(product=self.product, lot_code="L1")
        self.client.force_authenticate(user=self.admin)

    def _adjust(self, payload=None, **headers):
        body = {"productUuid": str(self.product.id), "quantity": 5, "reason": "Recount", "lotId": str(self.lot.id)}
        body.update(payload or {})
        return self.client.post("/api/v1/admin/inventory/adjust/", body, format="json", **headers)

    def test_positive_adjustment_keeps_sign_and_bumps_cache(self):
        response = self._adjust(HTTP_X_LOCATION_ID=str(self.store.id))

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(Decimal(body["qty"]), Decimal("5"))
        self.assertEqual(body["reason"], "Recount")
        self.assertEqual(body["locationId"], self.store.id)
        self.assertEqual(self.cached_stock(), Decimal("25"))
        self.assertEqual(get_stock_balance(self.product.id, self.store.id), Decimal("5"))
        self.assertEqual(get_stock_balance(self.product.id, self.warehouse.id), Decimal("20"))

    def test_adjust_requires_location_header(self):
        response = self._adjust()

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], "X-Location-Id header is required.")

    def test_adjust_rejects_malformed_location_header(self):
        for raw in ["abc", "0", "-3"]:
            response = self._adjust(HTTP_X_LOCATION_ID=raw)
            self.assertEqual(response.status_code, 400)
            self.assertEqual(response.json()["message"], "Invalid X-Location-Id header. Must be a positive integer.")

    def test_adjust_rejects_zero_quantity_and_blank_reason(self):
        zero = self._adjust({"quantity": 0}, HTTP_X_LOCATION_ID=str(self.store.id))
        blank = self._adjust({"reason": ""}, HTTP_X_LOCATION_ID=str(self.store.id))

        self.assertEqual(zero.status_code, 400)
        self.assertEqual(zero.json()["message"], "Quantity cannot be zero.")
        self.assertEqual(blank.status_code, 400)
        self.assertIn("reason", blank.json()["errors"])
        self.assertEqual(StockMovement.objects.filter(type=StockMovement.Type.ADJUSTMENT).count(), 0)

    def test_adjust_unknown_location_is_not_found(self):
        response = self._adjust(HTTP_X_LOCATION_ID="9999")

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error"], "Location with ID 9999 not found.")
        self.assertEqual(self.cached_stock(), Decimal("20"))

    def test_adjust_service_requires_reason(self):
        with self.assertRaises(InventoryRuleViolation):
            adjust_stock(
                product_id=self.product.id,
                quantity=Decimal("-1"),
                reason="   ",
                lot_id=self.lot.id,
                location_id=self.warehouse.id,
            )


class ReceiveTests(InventoryTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.client.force_authenticate(user=self.supervisor)

    def _receive(self, payload, **headers):
        return self.client.post("/api/v1/inventory/receive/", payload, format="json", **headers)

    def test_receive_batch_creates_lots_and_receipts(self):
        chips = Product.objects.create(name="Chips")

        response = self._receive(
            {
                "items": [
                    {"productUuid": str(self.product.id), "quantity": 12, "lotCode": "C-1", "expiresOn": "2030-01-31"},
                    {"productUuid": str(chips.id), "quantity": "4.5"},
                ],
                "reference": "PO-9",
                "notes": "Weekly delivery",
            },
            HTTP_X_LOCATION_ID=str(self.warehouse.id),
        )

        self.assertEqual(response.status_code, 201)
        movements = response.json()["stockMovements"]
        self.assertEqual(len(movements), 2)
        self.assertTrue(all(m["type"] == "RECEIPT" and m["ref"] == "PO-9" for m in movements))
        self.assertTrue(all(m["locationId"] == self.warehouse.id for m in movements))

        lot = ProductLot.objects.get(product=self.product, lot_code="C-1")
        self.assertEqual(lot.expires_on, date(2030, 1, 31))
        generated = ProductLot.objects.get(product=chips)
        self.assertTrue(generated.lot_code.startswith("RCV-"))
        self.assertEqual(self.cached_stock(chips), Decimal("4.5"))

    def test_receive_reuses_existing_lot_and_patches_expiry(self):
        lot = ProductLot.objects.create(product=self.product, lot_code="C-1", expires_on=date(2029, 1, 1))

        response = self._receive(
            {"items": [{"productUuid": str(self.product.id), "quantity": 3, "lotCode": "C-1", "expiresOn": "2031-06-30"}]}
        )

        self.assertEqual(response.status_code, 201)
        self.assertEqual(ProductLot.objects.filter(product=self.product).count(), 1)
        lot.refresh_from_db()
        self.assertEqual(lot.expires_on, date(2031, 6, 30))
        self.assertEqual(response.json()["stockMovements"][0]["lotId"], str(lot.id))
        self.assertIsNone(response.json()["stockMovements"][0]["locationId"])

    def test_receive_same_product_twice_in_one_batch_writes_each_line(self):
        payload = {
            "items": [
                {"productUuid": str(self.product.id), "quantity": 4, "lotCode": "L1"},
                {"productUuid": str(self.product.id), "quantity": 6, "lotCode": "L1"},
            ],
            "reference": "PO-10",
        }

        response = self._receive(payload, HTTP_X_LOCATION_ID=str(self.warehouse.id))

        self.assertEqual(response.status_code, 201)
        self.assertEqual(len(response.json()["stockMovements"]), 2)
        self.assertEqual(StockMovement.objects.filter(type=StockMovement.Type.RECEIPT).count(), 2)
        self.assertEqual(ProductLot.objects.filter(product=self.product).count(), 1)
        self.assertEqual(self.cached_stock(), Decimal("10"))
        self.assertEqual(get_stock_balance(self.product.id, self.warehouse.id), Decimal("10"))

    def test_repeated_receipt_is_recorded_again(self):
        payload = {
            "items": [
                {"productUuid": str(self.product.id), "quantity": 4, "lotCode": "L1"},
                {"productUuid": str(self.product.id), "quantity": 6, "lotCode": "L1"},
            ],
            "reference": "PO-10",
        }

        first = self._receive(payload, HTTP_X_LOCATION_ID=str(self.warehouse.id))
        second = self._receive(payload, HTTP_X_LOCATION_ID=str(self.warehouse.id))

        self.assertEqual(first.status_code, 201)
        self.assertEqual(second.status_code, 201)
        self.assertEqual(StockMovement.objects.filter(type=StockMovement.Type.RECEIPT, ref="PO-10").count(), 4)
        self.assertEqual(self.cached_stock(), Decimal("20"))
        self.assertEqual(get_stock_balance(self.product.id, self.warehouse.id), Decimal("20"))

    def test_receive_locks_products_in_id_order(self):
        chips = Product.objects.create(name="Chips")
        items = [
            ReceivedItem(product_id=chips.id, quantity=Decimal("1")),
            ReceivedItem(product_id=self.product.id, quantity=Decimal("2")),
        ]

        with CaptureQueriesContext(connection) as queries:
            receive_inventory(items, location_id=self.warehouse.id)

        lookups = [
            query["sql"]
            for query in queries.captured_queries
            if query["sql"].startswith("SELECT") and '"inventory_product"' in query["sql"] and " IN (" in query["sql"]
        ]
        self.assertTrue(lookups)
        self.assertIn("ORDER BY", lookups[0].upper())

    def test_receive_unknown_products_writes_nothing(self):
        missing = "7f1f8a3e-2d7c-4a55-9d7b-3c3f0b3a9e10"

        response = self._receive(
            {
                "items": [
                    {"productUuid": str(self.product.id), "quantity": 5, "lotCode": "OK-1"},
                    {"productUuid": missing, "quantity": 5},
                ]
            }
        )

        self.assertEqual(response.status_code, 404)
        body = response.json()
        self.assertIn(missing, body["error"])
        self.assertEqual(body["errors"]["missingProductUuids"], [missing])
        self.assertEqual(StockMovement.objects.count(), 0)
        self.assertFalse(ProductLot.objects.exists())
        self.assertEqual(self.cached_stock(), Decimal("0"))

    def test_receive_rejects_expiry_without_lot_code(self):
        response = self._receive({"items": [{"productUuid": str(self.product.id), "quantity": 5, "expiresOn": "2030-01-01"}]})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(
            response.json()["message"],
            "An expiration date can only be provided if a lot code is also present.",
        )

    def test_receive_rejects_empty_batch_and_non_positive_quantity(self):
        empty = self._receive({"items": []})
        negative = self._receive({"items": [{"productUuid": str(self.product.id), "quantity": -1}]})

        self.assertEqual(empty.status_code, 400)
        self.assertEqual(empty.json()["message"], "At least one item must be received.")
        self.assertEqual(negative.status_code, 400)
        self.assertEqual(StockMovement.objects.count(), 0)

    def test_cashier_cannot_receive(self):
        self.client.force_authenticate(user=self.cashier)

        response = self._receive({"items": [{"productUuid": str(self.product.id), "quantity": 1}]})

        self.assertEqual(response.status_code, 403)


class GenericMovementTests(InventoryTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.lot = ProductLot.objects.create(product=self.product, lot_code="G-1")
        self.client.force_authenticate(user=self.cashier)

    def _post(self, **overrides):
        payload = {
            "productUuid": str(self.product.id),
            "qty": 5,
            "type": "SALE",
            "locationId": self.store.id,
            "lotId": str(self.lot.id),
        }
        payload.update(overrides)
        return self.client.post("/api/v1/stock-movements/", payload, format="json")

    def test_sign_follows_movement_type(self):
        sale = self._post(qty=5, type="SALE")
        ret = self._post(qty=-3, type="RETURN")
        receipt = self._post(qty=-10, type="RECEIPT")

        self.assertEqual(sale.status_code, 201)
        self.assertEqual(Decimal(sale.json()["qty"]), Decimal("-5"))
        self.assertEqual(Decimal(ret.json()["qty"]), Decimal("3"))
        self.assertEqual(Decimal(receipt.json()["qty"]), Decimal("10"))
        self.assertEqual(self.cached_stock(), Decimal("8"))

    def test_zero_quantity_is_rejected(self):
        response = self._post(qty=0)

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], "Quantity cannot be zero.")
        self.assertFalse(StockMovement.objects.exists())

    def test_unknown_type_and_missing_lot_are_rejected(self):
        bad_type = self._post(type="SHRINK")
        no_lot = self._post(lotId=None)

        self.assertEqual(bad_type.status_code, 400)
        self.assertIn("type", bad_type.json()["errors"])
        self.assertEqual(no_lot.status_code, 400)
        self.assertIn("lotId", no_lot.json()["errors"])

    def test_list_includes_nested_relations_newest_first(self):
        first = self._post(type="RECEIPT", qty=10).json()
        second = self._post(type="SALE", qty=2, locationId=None).json()
        StockMovement.objects.filter(id=first["id"]).update(created_at=datetime(2024, 1, 1, tzinfo=dt_timezone.utc))

        response = self.client.get("/api/v1/stock-movements/", {"productUuid": str(self.product.id)})

        self.assertEqual(response.status_code, 200)
        rows = response.json()
        self.assertEqual([row["id"] for row in rows], [second["id"], first["id"]])
        self.assertIsNone(rows[0]["location"])
        self.assertEqual(rows[1]["location"]["code"], self.store.code)
        self.assertEqual(rows[0]["lot"]["lotCode"], "G-1")
        self.assertEqual(rows[0]["product"]["name"], "Cola 330ml")

        sales = self.client.get("/api/v1/stock-movements/", {"type": "SALE"})
        self.assertEqual([row["id"] for row in sales.json()], [second["id"]])

    def test_signed_quantity_policy(self):
        self.assertEqual(signed_quantity(StockMovement.Type.TRANSFER, Decimal("4")), Decimal("-4"))
        self.assertEqual(signed_quantity(StockMovement.Type.ADJUSTMENT, Decimal("-4")), Decimal("-4"))
        self.assertEqual(signed_quantity(StockMovement.Type.RETURN, Decimal("-4")), Decimal("4"))
        with self.assertRaises(InventoryRuleViolation):
            signed_quantity(StockMovement.Type.SALE, Decimal("0"))


class KardexTests(InventoryTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.receipt = self.receive("50", expires_on=date(2030, 5, 1))
        self.lot = self.receipt.lot
        self.adjustment = adjust_stock(
            product_id=self.product.id,
            quantity=Decimal("-5"),
            reason="Breakage",
            lot_id=self.lot.id,
            location_id=self.warehouse.id,
        )
        self.unlocated = self.receive("7", location=False, lot_code="L2")

        StockMovement.objects.filter(id=self.receipt.id).update(created_at=datetime(2024, 1, 5, tzinfo=dt_timezone.utc))
        StockMovement.objects.filter(id=self.adjustment.id).update(created_at=datetime(2024, 1, 10, tzinfo=dt_timezone.utc))
        StockMovement.objects.filter(id=self.unlocated.id).update(created_at=datetime(2024, 1, 20, tzinfo=dt_timezone.utc))
        self.client.force_authenticate(user=self.supervisor)

    def test_kardex_rows_are_newest_first_with_joined_details(self):
        response = self.client.get("/api/v1/admin/inventory/kardex/", {"productUuid": str(self.product.id)})

        self.assertEqual(response.status_code, 200)
        rows = response.json()
        self.assertEqual([row["id"] for row in rows], [str(self.unlocated.id), str(self.adjustment.id), str(self.receipt.id)])
        self.assertIsNone(rows[0]["locationId"])
        self.assertIsNone(rows[0]["locationName"])
        self.assertEqual(rows[1]["locationName"], "Bodega")
        self.assertEqual(rows[1]["reason"], "Breakage")
        self.assertEqual(rows[2]["productName"], "Cola 330ml")
        self.assertEqual(rows[2]["productBarcode"], "750100")
        self.assertEqual(rows[2]["lotCode"], "L1")
        self.assertEqual(rows[2]["lotExpiresOn"], "2030-05-01")

    def test_kardex_date_bounds_are_inclusive(self):
        response = self.client.get(
            "/api/v1/admin/inventory/kardex/",
            {"from": "2024-01-05T00:00:00+00:00", "to": "2024-01-10T00:00:00+00:00"},
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual([row["id"] for row in response.json()], [str(self.adjustment.id), str(self.receipt.id)])

    def test_kardex_filters_by_type_and_location(self):
        by_type = self.client.get("/api/v1/admin/inventory/kardex/", {"type": "ADJUSTMENT"})
        by_location = self.client.get("/api/v1/admin/inventory/kardex/", {"locationId": self.warehouse.id})

        self.assertEqual([row["id"] for row in by_type.json()], [str(self.adjustment.id)])
        self.assertEqual(len(by_location.json()), 2)

    def test_kardex_rejects_inverted_range(self):
        response = self.client.get(
            "/api/v1/admin/inventory/kardex/",
            {"from": "2024-02-01T00:00:00+00:00", "to": "2024-01-01T00:00:00+00:00"},
        )

        self.assertEqual(response.status_code, 400)

    def test_cashier_cannot_read_kardex(self):
        self.client.force_authenticate(user=self.cashier)

        response = self.client.get("/api/v1/admin/inventory/kardex/")

        self.assertEqual(response.status_code, 403)


class StockLevelsTests(InventoryTestMixin, TestCase):
    def test_levels_group_by_product_and_location(self):
        chips = Product.objects.create(name="Chips")
        self.receive("40")
        self.receive("15", location=self.store, lot_code="L9")
        self.receive("8", product=chips, lot_code="C1")
        self.receive("3", location=False, lot_code="L0")
        self.client.force_authenticate(user=self.cashier)

        everything = self.client.get("/api/v1/admin/inventory/stock/")
        scoped = self.client.get(
            "/api/v1/admin/inventory/stock/",
            {"productId": str(self.product.id)},
            HTTP_X_LOCATION_IDS=f"{self.store.id}",
        )

        self.assertEqual(everything.status_code, 200)
        self.assertTrue(everything.json()["ok"])
        self.assertEqual(len(everything.json()["stock"]), 3)
        self.assertEqual(
            scoped.json()["stock"],
            [{"productId": str(self.product.id), "locationId": self.store.id, "qty": 15}],
        )


class FefoTests(InventoryTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.receive("5", lot_code="LATE", expires_on=date(2031, 1, 1))
        self.receive("10", lot_code="EARLY", expires_on=date(2030, 1, 1))
        self.receive("4", lot_code="NODATE")
        empty = self.receive("2", lot_code="EMPTY", expires_on=date(2029, 1, 1))
        adjust_stock(
            product_id=self.product.id,
            quantity=Decimal("-2"),
            reason="Expired",
            lot_id=empty.lot_id,
            location_id=self.warehouse.id,
        )

    def test_lots_with_balance_ordered_by_expiry(self):
        lots = get_lots_with_balance(self.product.id)

        self.assertEqual([lot.lot_code for lot in lots], ["EARLY", "LATE", "NODATE"])
        self.assertEqual(lots[0].balance, Decimal("10"))

    def test_allocation_consumes_earliest_lots_first(self):
        allocations = allocate_fefo(self.product.id, Decimal("12"))

        self.assertEqual([(a.lot_code, a.quantity) for a in allocations], [("EARLY", Decimal("10")), ("LATE", Decimal("2"))])

    def test_allocation_rejects_bad_requests(self):
        with self.assertRaises(InventoryRuleViolation):
            allocate_fefo(self.product.id, Decimal("0"))
        with self.assertRaises(InsufficientStock):
            allocate_fefo(self.product.id, Decimal("50"))

    def test_lots_available_endpoint_returns_plan(self):
        self.client.force_authenticate(user=self.cashier)

        response = self.client.get(
            "/api/v1/inventory/lots-available/",
            {"productUuid": str(self.product.id), "quantity": "3"},
        )

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual([lot["lotCode"] for lot in body["lots"]], ["EARLY", "LATE", "NODATE"])
        self.assertEqual(body["allocations"], [{"lotId": body["lots"][0]["id"], "lotCode": "EARLY", "quantity": "3.000"}])


class ProductLotTests(InventoryTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.client.force_authenticate(user=self.supervisor)

    def test_upsert_creates_then_updates(self):
        created = self.client.post(
            "/api/v1/product-lots/",
            {"productUuid": str(self.product.id), "lotCode": "LOT-A", "expiresOn": "2030-03-01"},
            format="json",
        )
        self.assertEqual(created.status_code, 201)
        lot_id = created.json()["id"]

        updated = self.client.post(
            "/api/v1/product-lots/",
            {"id": lot_id, "productUuid": str(self.product.id), "expiresOn": "2030-04-01"},
            format="json",
        )

        self.assertEqual(updated.status_code, 200)
        lot = ProductLot.objects.get(id=lot_id)
        self.assertEqual(lot.lot_code, "LOT-A")
        self.assertEqual(lot.expires_on, date(2030, 4, 1))
        self.assertEqual(AuditLog.objects.filter(action="lot.upsert").count(), 2)

    def test_duplicate_lot_code_is_rejected(self):
        ProductLot.objects.create(product=self.product, lot_code="LOT-A")

        response = self.client.post(
            "/api/v1/product-lots/",
            {"productUuid": str(self.product.id), "lotCode": "LOT-A"},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "business_rule_violation")

    def test_list_orders_by_expiry_with_product(self):
        ProductLot.objects.create(product=self.product, lot_code="B", expires_on=date(2031, 1, 1))
        ProductLot.objects.create(product=self.product, lot_code="A", expires_on=date(2030, 1, 1))

        response = self.client.get("/api/v1/product-lots/", {"productUuid": str(self.product.id)})

        self.assertEqual(response.status_code, 200)
        self.assertEqual([row["lotCode"] for row in response.json()], ["A", "B"])
        self.assertEqual(response.json()[0]["product"]["uuid"], str(self.product.id))


class LocationAdminTests(InventoryTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.client.force_authenticate(user=self.admin)

    def test_upsert_creates_and_updates_location(self):
        created = self.client.post(
            "/api/v1/admin/inventory-locations/upsert/",
            {"name": "Kiosk Mall", "code": "KSK-1", "locationType": "kiosk", "isActive": True},
            format="json",
        )
        self.assertEqual(created.status_code, 201)
        self.assertEqual(created.json()["message"], "Location created successfully.")
        location_id = created.json()["location"]["id"]

        updated = self.client.post(
            "/api/v1/admin/inventory-locations/upsert/",
            {"id": location_id, "name": "Kiosk Mall Norte", "code": "KSK-1", "locationType": "kiosk", "isActive": False},
            format="json",
        )

        self.assertEqual(updated.status_code, 200)
        self.assertEqual(updated.json()["message"], "Location updated successfully.")
        location = Location.objects.get(id=location_id)
        self.assertEqual(location.name, "Kiosk Mall Norte")
        self.assertFalse(location.is_active)

    def test_upsert_rejects_duplicate_code_and_bad_type(self):
        duplicate = self.client.post(
            "/api/v1/admin/inventory-locations/upsert/",
            {"name": "Copy", "code": self.store.code, "locationType": "tienda"},
            format="json",
        )
        bad_type = self.client.post(
            "/api/v1/admin/inventory-locations/upsert/",
            {"name": "Odd", "code": "ODD-1", "locationType": "garage"},
            format="json",
        )

        self.assertEqual(duplicate.status_code, 400)
        self.assertIn("code", duplicate.json()["errors"])
        self.assertEqual(bad_type.status_code, 400)
        self.assertIn("locationType", bad_type.json()["errors"])

    def test_upsert_validates_location_id(self):
        malformed = self.client.post(
            "/api/v1/admin/inventory-locations/upsert/",
            {"id": "abc", "name": "Odd", "code": "ODD-1", "locationType": "kiosk"},
            format="json",
        )
        missing = self.client.post(
            "/api/v1/admin/inventory-locations/upsert/",
            {"id": 9999, "name": "Odd", "code": "ODD-1", "locationType": "kiosk"},
            format="json",
        )

        self.assertEqual(malformed.status_code, 400)
        self.assertIn("id", malformed.json()["errors"])
        self.assertEqual(missing.status_code, 404)
        self.assertEqual(missing.json()["error"], "Location with ID 9999 not found.")
        self.assertFalse(Location.objects.filter(code="ODD-1").exists())

    def test_list_is_paginated_and_filtered(self):
        response = self.client.get("/api/v1/admin/inventory-locations/", {"locationType": "bodega"})

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(sorted(payload.keys()), ["count", "next", "previous", "results"])
        self.assertEqual([row["code"] for row in payload["results"]], ["BOD-1"])

        by_name = self.client.get("/api/v1/admin/inventory-locations/", {"name": "tien"})
        self.assertEqual([row["code"] for row in by_name.json()["results"]], ["TDA-1"])

        limited = self.client.get("/api/v1/admin/inventory-locations/", {"limit": 1})
        self.assertEqual(limited.json()["count"], 2)
        self.assertEqual([row["code"] for row in limited.json()["results"]], ["BOD-1"])
        self.assertIsNotNone(limited.json()["next"])

        ignored = self.client.get("/api/v1/admin/inventory-locations/", {"limit": "abc"})
        self.assertEqual(len(ignored.json()["results"]), 2)

    def test_supervisor_cannot_manage_locations(self):
        self.client.force_authenticate(user=self.supervisor)

        response = self.client.get("/api/v1/admin/inventory-locations/")

        self.assertEqual(response.status_code, 403)


class LedgerIntegrityTests(InventoryTestMixin, TestCase):
    def test_movements_cannot_be_edited_or_deleted(self):
        movement = self.receive("5")

        movement.qty = Decimal("500")
        with self.assertRaises(DjangoValidationError):
            movement.save()
        with self.assertRaises(DjangoValidationError):
            movement.delete()
        self.assertEqual(StockMovement.objects.get(id=movement.id).qty, Decimal("5"))

    def test_reconcile_command_reports_and_repairs_drift(self):
        self.receive("12")
        Product.objects.filter(id=self.product.id).update(stock_quantity=Decimal("99"))

        dry_run = StringIO()
        call_command("reconcile_stock_cache", stdout=dry_run)
        self.assertIn("Found 1 product(s) with cache drift.", dry_run.getvalue())
        self.assertEqual(self.cached_stock(), Decimal("99"))

        applied = StringIO()
        call_command("reconcile_stock_cache", "--apply", stdout=applied)
        self.assertIn("Repaired cached stock for 1 product(s).", applied.getvalue())
        self.assertEqual(self.cached_stock(), Decimal("12"))

        clean = StringIO()
        call_command("reconcile_stock_cache", stdout=clean)
        self.assertIn("Stock cache matches the movement ledger.", clean.getvalue())

    def test_reconcile_command_rejects_malformed_product_id(self):
        self.receive("12")
        Product.objects.filter(id=self.product.id).update(stock_quantity=Decimal("99"))

        with self.assertRaises(CommandError) as ctx:
            call_command("reconcile_stock_cache", "--apply", "--product", "nope", stdout=StringIO())

        self.assertIn("nope", str(ctx.exception))
        self.assertEqual(self.cached_stock(), Decimal("99"))

        scoped = StringIO()
        call_command("reconcile_stock_cache", "--product", str(self.product.id), stdout=scoped)
        self.assertIn("Found 1 product(s) with cache drift.", scoped.getvalue())

    def test_unauthenticated_requests_get_error_envelope(self):
        response = self.client.get("/api/v1/stock-movements/")

        self.assertEqual(response.status_code, 401)
        body = response.json()
        self.assertEqual(body["code"], "not_authenticated")
        self.assertEqual(sorted(body.keys()), ["code", "error", "errors", "message", "status"])
