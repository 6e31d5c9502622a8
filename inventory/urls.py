from django.urls import path

from inventory.views import (
    AdminLocationListView,
    AdminLocationUpsertView,
    AdminStockLevelsView,
    InventoryAdjustView,
    InventoryReceiveView,
    InventoryTransferView,
    KardexView,
    LotsAvailableView,
    ProductLotListUpsertView,
    StockAvailableView,
    StockMovementListCreateView,
)

urlpatterns = [
    path("admin/inventory/adjust/", InventoryAdjustView.as_view(), name="inventory-adjust"),
    path("admin/inventory/transfer/", InventoryTransferView.as_view(), name="inventory-transfer"),
    path("admin/inventory/kardex/", KardexView.as_view(), name="inventory-kardex"),
    path("admin/inventory/stock/", AdminStockLevelsView.as_view(), name="inventory-stock-levels"),
    path("admin/inventory-locations/", AdminLocationListView.as_view(), name="inventory-location-list"),
    path("admin/inventory-locations/upsert/", AdminLocationUpsertView.as_view(), name="inventory-location-upsert"),
    path("inventory/receive/", InventoryReceiveView.as_view(), name="inventory-receive"),
    path("inventory/stock-available/", StockAvailableView.as_view(), name="inventory-stock-available"),
    path("inventory/lots-available/", LotsAvailableView.as_view(), name="inventory-lots-available"),
    path("stock-movements/", StockMovementListCreateView.as_view(), name="stock-movement-list"),
    path("product-lots/", ProductLotListUpsertView.as_view(), name="product-lot-list"),
]
