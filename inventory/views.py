from django.db.models import F, Q
from rest_framework import generics, status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from common.audit import create_audit_log_from_request
from common.permissions import RoleCapabilityPermission
from common.utils import parse_location_header, parse_location_ids_header
from inventory.models import Location, ProductLot
from inventory.serializers import (
    AdminStockQuerySerializer,
    AllocationSerializer,
    InventoryReceiptSerializer,
    KardexEntrySerializer,
    KardexQuerySerializer,
    LocationSerializer,
    LocationUpsertSerializer,
    LotBalanceSerializer,
    LotsAvailableQuerySerializer,
    ProductLotQuerySerializer,
    ProductLotUpsertSerializer,
    ProductLotWithProductSerializer,
    StockAdjustmentSerializer,
    StockAvailableQuerySerializer,
    StockMovementCreateSerializer,
    StockMovementDetailSerializer,
    StockMovementQuerySerializer,
    StockMovementSerializer,
    StockTransferSerializer,
)
from inventory.services import (
    ReceivedItem,
    adjust_stock,
    allocate_fefo,
    get_lots_with_balance,
    get_stock_balance,
    kardex,
    list_movements,
    receive_inventory,
    record_movement,
    stock_levels,
    transfer_stock,
    upsert_lot,
)


def _validated_query(serializer_class, request):
    serializer = serializer_class(data=request.query_params)
    serializer.is_valid(raise_exception=True)
    return serializer.validated_data


class InventoryAdjustView(APIView):
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"post": "stock.adjust"}

    def post(self, request):
        location_id = parse_location_header(request, required=True)
        serializer = StockAdjustmentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        movement = adjust_stock(
            product_id=data["productUuid"],
            quantity=data["quantity"],
            reason=data["reason"],
            lot_id=data["lotId"],
            location_id=location_id,
        )
        payload = StockMovementSerializer(movement).data
        create_audit_log_from_request(
            request,
            action="stock.adjust",
            entity="stock_movement",
            entity_id=movement.id,
            after_snapshot=payload,
            location_id=location_id,
        )
        return Response(payload, status=status.HTTP_201_CREATED)


class InventoryTransferView(APIView):
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"post": "stock.transfer"}

    def post(self, request):
        serializer = StockTransferSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = transfer_stock(
            product_id=data["productUuid"],
            quantity=data["quantity"],
            from_location_id=data["fromLocationId"],
            to_location_id=data["toLocationId"],
            lot_id=data["lotId"],
            reference=data.get("reference") or None,
        )
        movements = StockMovementSerializer(result.movements, many=True).data
        create_audit_log_from_request(
            request,
            action="stock.transfer",
            entity="stock_movement",
            entity_id=result.reference,
            after_snapshot={"reference": result.reference, "movements": movements},
            location_id=data["fromLocationId"],
        )
        return Response(
            {"message": result.message, "reference": result.reference, "movements": movements},
            status=status.HTTP_201_CREATED,
        )


class KardexView(APIView):
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"get": "inventory.audit.view"}

    def get(self, request):
        query = _validated_query(KardexQuerySerializer, request)
        rows = kardex(
            product_id=query.get("productUuid"),
            location_id=query.get("locationId"),
            date_from=query.get("from"),
            date_to=query.get("to"),
            movement_type=query.get("type"),
        )
        return Response(KardexEntrySerializer(rows, many=True).data)


class AdminStockLevelsView(APIView):
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"get": "inventory.view"}

    def get(self, request):
        query = _validated_query(AdminStockQuerySerializer, request)
        levels = stock_levels(
            product_id=query.get("productId"),
            location_ids=parse_location_ids_header(request),
        )
        stock = [
            {"productId": str(row["product_id"]), "locationId": row["location_id"], "qty": row["qty"]}
            for row in levels
        ]
        return Response({"ok": True, "stock": stock})


class InventoryReceiveView(APIView):
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"post": "stock.receive"}

    def post(self, request):
        location_id = parse_location_header(request)
        serializer = InventoryReceiptSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        items = [
            ReceivedItem(
                product_id=item["productUuid"],
                quantity=item["quantity"],
                lot_code=item.get("lotCode"),
                expires_on=item.get("expiresOn"),
            )
            for item in data["items"]
        ]
        result = receive_inventory(
            items,
            reference=data.get("reference") or None,
            notes=data.get("notes") or None,
            location_id=location_id,
        )
        movements = StockMovementSerializer(result.movements, many=True).data
        create_audit_log_from_request(
            request,
            action="stock.receive",
            entity="stock_movement",
            entity_id=data.get("reference") or None,
            after_snapshot={"notes": data.get("notes"), "movements": movements},
            location_id=location_id,
        )
        return Response({"message": result.message, "stockMovements": movements}, status=status.HTTP_201_CREATED)


class StockAvailableView(APIView):
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"get": "inventory.view"}

    def get(self, request):
        query = _validated_query(StockAvailableQuerySerializer, request)
        available = get_stock_balance(query["productUuid"], query["locationId"])
        return Response({"availableStock": available})


class LotsAvailableView(APIView):
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"get": "inventory.view"}

    def get(self, request):
        query = _validated_query(LotsAvailableQuerySerializer, request)
        product_id = query["productUuid"]
        location_id = query.get("locationId")

        payload = {
            "lots": LotBalanceSerializer(get_lots_with_balance(product_id, location_id=location_id), many=True).data,
        }
        if query.get("quantity") is not None:
            allocations = allocate_fefo(product_id, query["quantity"], location_id=location_id)
            payload["allocations"] = AllocationSerializer(allocations, many=True).data
        return Response(payload)


class StockMovementListCreateView(APIView):
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"get": "inventory.view", "post": "stock.movement.create"}

    def get(self, request):
        query = _validated_query(StockMovementQuerySerializer, request)
        movements = list_movements(
            product_id=query.get("productUuid"),
            location_id=query.get("locationId"),
            lot_id=query.get("lotId"),
            movement_type=query.get("type"),
        )
        return Response(StockMovementDetailSerializer(movements, many=True).data)

    def post(self, request):
        serializer = StockMovementCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        movement = record_movement(
            product_id=data["productUuid"],
            qty=data["qty"],
            movement_type=data["type"],
            lot_id=data["lotId"],
            location_id=data.get("locationId"),
            ref=data.get("ref") or None,
        )
        payload = StockMovementSerializer(movement).data
        create_audit_log_from_request(
            request,
            action="stock.movement",
            entity="stock_movement",
            entity_id=movement.id,
            after_snapshot=payload,
            location_id=movement.location_id,
        )
        return Response(payload, status=status.HTTP_201_CREATED)


class ProductLotListUpsertView(APIView):
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"get": "inventory.view", "post": "stock.receive"}

    def get(self, request):
        query = _validated_query(ProductLotQuerySerializer, request)
        lots = ProductLot.objects.select_related("product").order_by(F("expires_on").asc(nulls_last=True), "lot_code")
        if query.get("productUuid"):
            lots = lots.filter(product_id=query["productUuid"])
        return Response(ProductLotWithProductSerializer(lots, many=True).data)

    def post(self, request):
        serializer = ProductLotUpsertSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        lot_id = data.get("id")
        before = None
        if lot_id:
            existing = ProductLot.objects.filter(id=lot_id).first()
            before = ProductLotWithProductSerializer(existing).data if existing else None

        kwargs = {"product_id": data["productUuid"], "lot_id": lot_id, "lot_code": data.get("lotCode")}
        if "expiresOn" in data:
            kwargs["expires_on"] = data["expiresOn"]
        lot, created = upsert_lot(**kwargs)

        payload = ProductLotWithProductSerializer(lot).data
        create_audit_log_from_request(
            request,
            action="lot.upsert",
            entity="product_lot",
            entity_id=lot.id,
            before_snapshot=before,
            after_snapshot=payload,
        )
        return Response(payload, status=status.HTTP_201_CREATED if created else status.HTTP_200_OK)


class AdminLocationListView(generics.ListAPIView):
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"get": "admin.records.manage"}
    serializer_class = LocationSerializer

    def get_queryset(self):
        params = self.request.query_params
        queryset = Location.objects.all()

        if params.get("name"):
            queryset = queryset.filter(name__icontains=params["name"])
        if params.get("code"):
            queryset = queryset.filter(code__icontains=params["code"])
        if params.get("search"):
            term = params["search"]
            queryset = queryset.filter(Q(name__icontains=term) | Q(code__icontains=term))
        if params.get("locationType"):
            queryset = queryset.filter(location_type=params["locationType"])
        if params.get("isActive") in {"true", "false"}:
            queryset = queryset.filter(is_active=params["isActive"] == "true")

        ordering = "name"
        if params.get("sortBy") in {"name", "code", "createdAt"}:
            ordering = {"createdAt": "created_at"}.get(params["sortBy"], params["sortBy"])
        if params.get("sortDirection") == "desc":
            ordering = f"-{ordering}"
        return queryset.order_by(ordering, "id")


class AdminLocationUpsertView(APIView):
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"post": "admin.records.manage"}

    def post(self, request):
        serializer = LocationUpsertSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        instance = serializer.instance
        before = LocationSerializer(instance).data if instance else None
        location = serializer.save()

        payload = LocationSerializer(location).data
        create_audit_log_from_request(
            request,
            action="location.upsert",
            entity="location",
            entity_id=location.id,
            before_snapshot=before,
            after_snapshot=payload,
            location_id=location.id,
        )
        message = "Location updated successfully." if instance else "Location created successfully."
        return Response(
            {"message": message, "location": payload},
            status=status.HTTP_200_OK if instance else status.HTTP_201_CREATED,
        )
