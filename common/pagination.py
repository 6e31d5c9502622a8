from rest_framework.pagination import PageNumberPagination


class StandardResultsSetPagination(PageNumberPagination):
    """Shared pagination behavior for list endpoints.

    Clients can tune page size with `?page_size=` (or `?limit=`, which the
    kiosk admin screens send) but values are capped to keep payload sizes
    predictable.
    """

    page_size_query_param = "page_size"
    max_page_size = 200

    def get_page_size(self, request):
        if self.page_size_query_param not in request.query_params and "limit" in request.query_params:
            try:
                limit = int(request.query_params["limit"])
            except (TypeError, ValueError):
                return self.page_size
            if limit > 0:
                return min(limit, self.max_page_size)
            return self.page_size
        return super().get_page_size(request)
