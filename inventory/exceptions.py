from rest_framework import status
from rest_framework.exceptions import APIException


class InventoryError(APIException):
    """Base for rejected inventory operations.

    ``extra`` carries structured context (missing ids, available amounts) that
    the error envelope returns under ``errors``.
    """

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Inventory operation rejected."
    default_code = "inventory_error"

    def __init__(self, detail=None, code=None, extra=None):
        super().__init__(detail=detail, code=code)
        self.extra = extra


class InventoryRuleViolation(InventoryError):
    default_detail = "Inventory rule violated."
    default_code = "business_rule_violation"


class UnknownReference(InventoryError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Referenced record not found."
    default_code = "not_found"


class InsufficientStock(InventoryError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Insufficient stock."
    default_code = "insufficient_stock"

    def __init__(self, *, available, requested, detail=None, extra=None):
        self.available = available
        self.requested = requested
        context = {"available": str(available), "requested": str(requested)}
        context.update(extra or {})
        super().__init__(
            detail=detail or f"Insufficient stock. Available: {available}, Requested: {requested}",
            extra=context,
        )
