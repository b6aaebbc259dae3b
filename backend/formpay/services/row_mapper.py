from decimal import Decimal
from typing import Any, Mapping, Sequence

from formpay.services.schema import SYSTEM_FIELDS, header_key

PHOTO_URLS_KEY = header_key("photoUrls")


def _lookup(record: Mapping[str, Any]) -> dict[str, Any]:
    # Canonical system fields first, then the rest in sorted order; first key wins.
    keys = sorted(record, key=lambda k: (k not in SYSTEM_FIELDS, k))
    lookup = {}
    for k in keys:
        lookup.setdefault(header_key(k), record[k])
    return lookup


def cell_value(key: str, value: Any) -> Any:
    if value is None:
        return ""
    if key == PHOTO_URLS_KEY and isinstance(value, (list, tuple)):
        return "\n".join(str(v) for v in value)
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (int, float)):
        return value
    return str(value)


def map_row(headers: Sequence[str], record: Mapping[str, Any]) -> list[Any]:
    """Project ``record`` onto ``headers``; headers the record lacks get ``""``."""
    lookup = _lookup(record)
    row = []
    for header in headers:
        key = header_key(header)
        row.append(cell_value(key, lookup.get(key)))
    return row
