from rest_framework.exceptions import ValidationError

LOCATION_HEADER = "X-Location-Id"
LOCATION_LIST_HEADER = "X-Location-Ids"


def parse_location_header(request, *, required=False):
    """Read the kiosk's write location from ``X-Location-Id``.

    Returns ``None`` when the header is absent and not required. A present
    header must hold a positive integer.
    """
    raw = request.headers.get(LOCATION_HEADER)
    if raw is None or raw.strip() == "":
        if required:
            raise ValidationError({LOCATION_HEADER: [f"{LOCATION_HEADER} header is required."]})
        return None

    try:
        location_id = int(raw.strip())
    except ValueError:
        location_id = 0
    if location_id <= 0:
        raise ValidationError({LOCATION_HEADER: [f"Invalid {LOCATION_HEADER} header. Must be a positive integer."]})
    return location_id


def parse_location_ids_header(request):
    # Comma separated; entries that are not integers are ignored.
    raw = request.headers.get(LOCATION_LIST_HEADER) or ""
    location_ids = []
    for item in raw.split(","):
        item = item.strip()
        if item.lstrip("-").isdigit():
            location_ids.append(int(item))
    return location_ids
