import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.db import transaction
from django.db.models import F, Q, Sum
from django.utils import timezone
from django.utils.crypto import get_random_string

from inventory.exceptions import InsufficientStock, InventoryRuleViolation, UnknownReference
from inventory.models import Location, Product, ProductLot, StockMovement

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

INBOUND_TYPES = frozenset({StockMovement.Type.RECEIPT, StockMovement.Type.RETURN})
OUTBOUND_TYPES = frozenset({StockMovement.Type.SALE, StockMovement.Type.TRANSFER, StockMovement.Type.ADJUSTMENT})

_UNSET = object()


def _to_decimal(value):
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise InventoryRuleViolation(f"Invalid quantity: {value!r}.")


def format_quantity(value):
    """Render a ledger amount without trailing zeros (``100.000`` -> ``100``)."""
    value = _to_decimal(value)
    if value == value.to_integral_value():
        return str(value.quantize(Decimal("1")))
    return format(value.normalize(), "f")


def _generate_code(prefix, length=10):
    return f"{prefix}{get_random_string(length).upper()}"


def signed_quantity(movement_type, quantity):
    """Stored quantity for a generic movement: the type decides the sign.

    RECEIPT and RETURN are stored positive, SALE, TRANSFER and ADJUSTMENT
    negative, whatever sign the caller sent. Zero is always rejected.
    """
    quantity = _to_decimal(quantity)
    if quantity == 0:
        raise InventoryRuleViolation("Quantity cannot be zero.")
    if movement_type in INBOUND_TYPES:
        return abs(quantity)
    if movement_type in OUTBOUND_TYPES:
        return -abs(quantity)
    raise InventoryRuleViolation(f"Unknown movement type: {movement_type}.")


def get_stock_balance(product_id, location_id):
    return (
        StockMovement.objects.filter(product_id=product_id, location_id=location_id).aggregate(total=Sum("qty"))["total"]
        or ZERO
    )


def get_product_stock(product_id):
    return StockMovement.objects.filter(product_id=product_id).aggregate(total=Sum("qty"))["total"] or ZERO


def stock_levels(*, product_id=None, location_ids=None):
    qs = StockMovement.objects.filter(location__isnull=False)
    if product_id:
        qs = qs.filter(product_id=product_id)
    if location_ids:
        qs = qs.filter(location_id__in=location_ids)

    rows = qs.values("product_id", "location_id").annotate(total=Sum("qty")).order_by("product_id", "location_id")
    return [
        {"product_id": row["product_id"], "location_id": row["location_id"], "qty": row["total"] or ZERO}
        for row in rows
    ]


def get_lots_with_balance(product_id, *, location_id=None):
    """Lots holding positive stock, first-expiring first; undated lots last."""
    movement_filter = Q(stock_movements__location_id=location_id) if location_id else None
    return list(
        ProductLot.objects.filter(product_id=product_id)
        .annotate(balance=Sum("stock_movements__qty", filter=movement_filter))
        .filter(balance__gt=0)
        .order_by(F("expires_on").asc(nulls_last=True), "lot_code")
    )


@dataclass(frozen=True)
class Allocation:
    lot_id: object
    lot_code: str
    quantity: Decimal


def allocate_fefo(product_id, requested_qty, *, location_id=None):
    """Plan which lots to consume for ``requested_qty`` (first expired, first out).

    Read-only: callers record the resulting SALE movements themselves.
    """
    requested_qty = _to_decimal(requested_qty)
    if requested_qty <= 0:
        raise InventoryRuleViolation("Requested quantity must be greater than zero.")

    if location_id:
        available = get_stock_balance(product_id, location_id)
    else:
        available = get_product_stock(product_id)
    if available < requested_qty:
        logger.warning(
            "fefo_allocation_rejected",
            extra={"product_id": str(product_id), "location_id": location_id, "quantity": str(requested_qty)},
        )
        raise InsufficientStock(
            available=format_quantity(available),
            requested=format_quantity(requested_qty),
            detail=(
                f"Insufficient stock for product {product_id}. "
                f"Requested: {format_quantity(requested_qty)}, Available: {format_quantity(available)}"
            ),
        )

    allocations = []
    remaining = requested_qty
    for lot in get_lots_with_balance(product_id, location_id=location_id):
        if remaining <= 0:
            break
        take = min(remaining, lot.balance)
        allocations.append(Allocation(lot_id=lot.id, lot_code=lot.lot_code, quantity=take))
        remaining -= take

    if remaining > 0:
        # Stock recorded without a lot cannot be allocated.
        allocated = requested_qty - remaining
        raise InsufficientStock(
            available=format_quantity(allocated),
            requested=format_quantity(requested_qty),
            detail="Stock allocation failed due to a discrepancy between lot balances and total stock.",
        )
    return allocations


def kardex(*, product_id=None, location_id=None, date_from=None, date_to=None, movement_type=None):
    qs = StockMovement.objects.all()
    if product_id:
        qs = qs.filter(product_id=product_id)
    if location_id:
        qs = qs.filter(location_id=location_id)
    if date_from:
        qs = qs.filter(created_at__gte=date_from)
    if date_to:
        qs = qs.filter(created_at__lte=date_to)
    if movement_type:
        qs = qs.filter(type=movement_type)

    return list(
        qs.order_by("-created_at").values(
            "id",
            "type",
            "qty",
            "ref",
            "reason",
            createdAt=F("created_at"),
            productUuid=F("product_id"),
            productName=F("product__name"),
            productBarcode=F("product__barcode"),
            locationId=F("location_id"),
            locationName=F("location__name"),
            lotId=F("lot_id"),
            lotCode=F("lot__lot_code"),
            lotExpiresOn=F("lot__expires_on"),
        )
    )


def list_movements(*, product_id=None, location_id=None, lot_id=None, movement_type=None):
    qs = StockMovement.objects.select_related("product", "location", "lot").order_by("-created_at")
    if product_id:
        qs = qs.filter(product_id=product_id)
    if location_id:
        qs = qs.filter(location_id=location_id)
    if lot_id:
        qs = qs.filter(lot_id=lot_id)
    if movement_type:
        qs = qs.filter(type=movement_type)
    return qs


def _require_product(product_id, *, lock=False):
    qs = Product.objects.select_for_update() if lock else Product.objects.all()
    product = qs.filter(id=product_id).first()
    if product is None:
        raise UnknownReference(f"Product {product_id} not found.", extra={"productUuid": str(product_id)})
    return product


def _require_location(location_id):
    location = Location.objects.filter(id=location_id).first()
    if location is None:
        raise UnknownReference(f"Location with ID {location_id} not found.", extra={"locationId": location_id})
    return location


def _require_lot(lot_id, product_id):
    if not lot_id:
        raise InventoryRuleViolation("Lot ID is required for all stock movements.")
    lot = ProductLot.objects.filter(id=lot_id).first()
    if lot is None:
        raise UnknownReference(f"Lot {lot_id} not found.", extra={"lotId": str(lot_id)})
    if str(lot.product_id) != str(product_id):
        raise InventoryRuleViolation(f"Lot {lot.lot_code} does not belong to product {product_id}.")
    return lot


def _bump_cached_stock(product_id, delta):
    Product.objects.filter(id=product_id).update(
        stock_quantity=F("stock_quantity") + delta,
        updated_at=timezone.now(),
    )


@dataclass(frozen=True)
class ReceivedItem:
    product_id: object
    quantity: Decimal
    lot_code: str | None = None
    expires_on: date | None = None


@dataclass
class ReceiptResult:
    movements: list = field(default_factory=list)
    message: str = "Inventory received successfully."


def _resolve_receipt_lot(item):
    lot_code = item.lot_code or _generate_code(settings.INVENTORY_RECEIPT_LOT_PREFIX)
    lot = ProductLot.objects.filter(product_id=item.product_id, lot_code=lot_code).first()
    if lot is None:
        return ProductLot.objects.create(product_id=item.product_id, lot_code=lot_code, expires_on=item.expires_on)

    if item.expires_on and lot.expires_on != item.expires_on:
        lot.expires_on = item.expires_on
        lot.save(update_fields=["expires_on"])
    return lot


def receive_inventory(items, *, reference=None, notes=None, location_id=None):
    """Book a batch of received items as RECEIPT movements.

    All items are accepted or none are: unknown products fail the whole batch
    with the full list of missing ids. Each item resolves (or creates) its lot,
    gets one positive RECEIPT movement and raises the product's cached stock.
    """
    items = list(items)
    if not items:
        raise InventoryRuleViolation("At least one item must be received.")
    for item in items:
        if _to_decimal(item.quantity) <= 0:
            raise InventoryRuleViolation("Quantity must be a positive number.")

    result = ReceiptResult()
    with transaction.atomic():
        requested_ids = list(dict.fromkeys(str(item.product_id) for item in items))
        # Lock in id order so overlapping receipts cannot deadlock.
        found_ids = {
            str(product_id)
            for product_id in Product.objects.select_for_update()
            .filter(id__in=requested_ids)
            .order_by("id")
            .values_list("id", flat=True)
        }
        missing = [product_id for product_id in requested_ids if product_id not in found_ids]
        if missing:
            raise UnknownReference(
                f"The following product UUIDs were not found: {', '.join(missing)}.",
                extra={"missingProductUuids": missing},
            )

        if location_id is not None:
            _require_location(location_id)

        for item in items:
            quantity = _to_decimal(item.quantity)
            lot = _resolve_receipt_lot(item)
            movement = StockMovement.objects.create(
                product_id=item.product_id,
                qty=quantity,
                type=StockMovement.Type.RECEIPT,
                location_id=location_id,
                lot=lot,
                ref=reference or None,
                reason=notes or None,
            )
            _bump_cached_stock(item.product_id, quantity)
            result.movements.append(movement)

    logger.info(
        "inventory_received",
        extra={"location_id": location_id, "reference": reference, "quantity": str(sum(_to_decimal(i.quantity) for i in items))},
    )
    return result


@dataclass(frozen=True)
class TransferResult:
    reference: str
    movements: list
    message: str = "Inventory transferred successfully."


def transfer_stock(*, product_id, quantity, from_location_id, to_location_id, lot_id, reference=None):
    """Move stock between two locations as a linked debit/credit pair.

    The origin location and product rows are locked before the balance check
    so two concurrent transfers out of the same location serialize. The
    product's cached total is left alone: the pair nets to zero.
    """
    quantity = _to_decimal(quantity)
    if quantity <= 0:
        raise InventoryRuleViolation("Transfer quantity must be positive.")
    if from_location_id == to_location_id:
        raise InventoryRuleViolation("Origin and destination locations cannot be the same.")
    if not lot_id:
        raise InventoryRuleViolation("Lot ID is required for inventory transfers.")

    reference = reference or _generate_code(settings.INVENTORY_TRANSFER_REFERENCE_PREFIX)

    with transaction.atomic():
        # Lock in id order so opposite-direction transfers cannot deadlock.
        locked_ids = set(
            Location.objects.select_for_update()
            .filter(id__in=[from_location_id, to_location_id])
            .order_by("id")
            .values_list("id", flat=True)
        )
        if from_location_id not in locked_ids:
            raise UnknownReference(
                f"Origin location with ID {from_location_id} not found.",
                extra={"fromLocationId": from_location_id},
            )
        if to_location_id not in locked_ids:
            raise UnknownReference(
                f"Destination location with ID {to_location_id} not found.",
                extra={"toLocationId": to_location_id},
            )

        _require_product(product_id, lock=True)
        lot = _require_lot(lot_id, product_id)

        available = get_stock_balance(product_id, from_location_id)
        if available < quantity:
            logger.warning(
                "transfer_rejected_insufficient_stock",
                extra={"product_id": str(product_id), "location_id": from_location_id, "quantity": str(quantity)},
            )
            raise InsufficientStock(
                available=format_quantity(available),
                requested=format_quantity(quantity),
                detail=(
                    "Insufficient stock in origin location. "
                    f"Available: {format_quantity(available)}, Requested: {format_quantity(quantity)}"
                ),
                extra={"fromLocationId": from_location_id},
            )

        outgoing = StockMovement.objects.create(
            product_id=product_id,
            qty=-quantity,
            type=StockMovement.Type.TRANSFER,
            location_id=from_location_id,
            lot=lot,
            ref=reference,
        )
        incoming = StockMovement.objects.create(
            product_id=product_id,
            qty=quantity,
            type=StockMovement.Type.TRANSFER,
            location_id=to_location_id,
            lot=lot,
            ref=reference,
        )

    logger.info(
        "inventory_transferred",
        extra={"product_id": str(product_id), "quantity": str(quantity), "reference": reference},
    )
    return TransferResult(reference=reference, movements=[outgoing, incoming])


def adjust_stock(*, product_id, quantity, reason, lot_id, location_id):
    """Record a signed correction; the caller's sign is stored as-is."""
    quantity = _to_decimal(quantity)
    if quantity == 0:
        raise InventoryRuleViolation("Quantity cannot be zero.")
    if not reason or not str(reason).strip():
        raise InventoryRuleViolation("Reason is required for adjustments.")
    if not lot_id:
        raise InventoryRuleViolation("Lot ID is required for inventory adjustments.")

    with transaction.atomic():
        _require_product(product_id, lock=True)
        _require_location(location_id)
        lot = _require_lot(lot_id, product_id)

        movement = StockMovement.objects.create(
            product_id=product_id,
            qty=quantity,
            type=StockMovement.Type.ADJUSTMENT,
            location_id=location_id,
            lot=lot,
            reason=reason,
        )
        _bump_cached_stock(product_id, quantity)

    logger.info(
        "inventory_adjusted",
        extra={"product_id": str(product_id), "location_id": location_id, "quantity": str(quantity)},
    )
    return movement


def record_movement(*, product_id, qty, movement_type, lot_id, location_id=None, ref=None):
    """Generic movement entry point; the sign comes from ``movement_type``."""
    final_qty = signed_quantity(movement_type, qty)
    if not lot_id:
        raise InventoryRuleViolation("Lot ID is required for all stock movements.")

    with transaction.atomic():
        _require_product(product_id, lock=True)
        if location_id is not None:
            _require_location(location_id)
        lot = _require_lot(lot_id, product_id)

        movement = StockMovement.objects.create(
            product_id=product_id,
            qty=final_qty,
            type=movement_type,
            location_id=location_id,
            lot=lot,
            ref=ref or None,
        )
        _bump_cached_stock(product_id, final_qty)

    logger.info(
        "stock_movement_recorded",
        extra={"product_id": str(product_id), "movement_type": movement_type, "quantity": str(final_qty)},
    )
    return movement


def upsert_lot(*, product_id, lot_id=None, lot_code=None, expires_on=_UNSET):
    """Create a lot, or patch code/expiry of an existing one. Returns ``(lot, created)``."""
    with transaction.atomic():
        _require_product(product_id)

        if lot_id:
            lot = ProductLot.objects.select_for_update().filter(id=lot_id).first()
            if lot is None:
                raise UnknownReference(f"Lot {lot_id} not found.", extra={"lotId": str(lot_id)})
            if str(lot.product_id) != str(product_id):
                raise InventoryRuleViolation("A lot cannot be moved to another product.")
            update_fields = []
            if lot_code and lot_code != lot.lot_code:
                _ensure_lot_code_free(product_id, lot_code, exclude_id=lot.id)
                lot.lot_code = lot_code
                update_fields.append("lot_code")
            if expires_on is not _UNSET:
                lot.expires_on = expires_on
                update_fields.append("expires_on")
            if update_fields:
                lot.save(update_fields=update_fields)
            return lot, False

        lot_code = lot_code or _generate_code(settings.INVENTORY_RECEIPT_LOT_PREFIX)
        _ensure_lot_code_free(product_id, lot_code)
        lot = ProductLot.objects.create(
            product_id=product_id,
            lot_code=lot_code,
            expires_on=None if expires_on is _UNSET else expires_on,
        )
        return lot, True


def _ensure_lot_code_free(product_id, lot_code, exclude_id=None):
    qs = ProductLot.objects.filter(product_id=product_id, lot_code=lot_code)
    if exclude_id:
        qs = qs.exclude(id=exclude_id)
    if qs.exists():
        raise InventoryRuleViolation(f"Lot code {lot_code} already exists for this product.")


@dataclass(frozen=True)
class CacheDrift:
    product_id: object
    cached: Decimal
    ledger: Decimal


def reconcile_stock_cache(*, product_ids=None, apply=True):
    """Compare each product's cached total with its ledger sum.

    Returns the drifted products; with ``apply`` the cache is overwritten
    with the ledger value.
    """
    drifts = []
    with transaction.atomic():
        products = Product.objects.select_for_update().order_by("id")
        if product_ids:
            products = products.filter(id__in=product_ids)
        products = list(products)

        totals = dict(
            StockMovement.objects.filter(product_id__in=[product.id for product in products])
            .values("product_id")
            .annotate(total=Sum("qty"))
            .values_list("product_id", "total")
        )
        for product in products:
            ledger = totals.get(product.id) or ZERO
            if product.stock_quantity == ledger:
                continue
            drifts.append(CacheDrift(product_id=product.id, cached=product.stock_quantity, ledger=ledger))
            if apply:
                Product.objects.filter(id=product.id).update(stock_quantity=ledger, updated_at=timezone.now())

    if drifts:
        logger.warning("stock_cache_drift_detected count=%s applied=%s", len(drifts), apply)
    return drifts
