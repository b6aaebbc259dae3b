"""Header row reconciliation for the destination sheet.

The first row of the target sheet is the schema. It only ever grows: existing
headers keep their position and new field names are appended to the right.
There is no locking on the spreadsheet, so two concurrent webhooks can both
decide to extend the header row. ``ensure_headers`` re-reads the row right
before writing to narrow that window, and the write itself is idempotent
(writing the same list twice changes nothing), but the migration remains
best-effort rather than exactly-once.
"""

import logging
from typing import Iterable

logger = logging.getLogger(__name__)

SYSTEM_FIELDS = (
    "timestamp",
    "name",
    "email",
    "paymentStatus",
    "paymentId",
    "paymentAmount",
)


def header_key(name) -> str:
    """Matching key for a header or field name.

    Surrounding whitespace is stripped, inner whitespace runs collapse to one
    space, and case is folded. Separators such as ``_`` or ``-`` are kept, so
    ``promo_code`` and ``promoCode`` stay distinct columns.
    """
    return " ".join(str(name).split()).casefold()


_SYSTEM_KEYS = {header_key(f): i for i, f in enumerate(SYSTEM_FIELDS)}


def is_system_field(name) -> bool:
    return header_key(name) in _SYSTEM_KEYS


def required_headers(field_names: Iterable[str]) -> list[str]:
    """System fields in their fixed order, then dynamic fields sorted."""
    system = []
    dynamic = []
    for name in field_names:
        if is_system_field(name):
            system.append(name)
        else:
            dynamic.append(name)
    system.sort(key=lambda n: _SYSTEM_KEYS[header_key(n)])
    return system + sorted(dynamic)


def reconcile_headers(current: Iterable[str], field_names: Iterable[str]) -> list[str]:
    """Return ``current`` extended with any required name it does not contain yet."""
    headers = list(current)
    seen = {header_key(h) for h in headers}
    for name in required_headers(field_names):
        key = header_key(name)
        if key not in seen:
            headers.append(name)
            seen.add(key)
    return headers


def ensure_headers(sheets, spreadsheet_id: str, sheet_name: str, field_names) -> list[str]:
    """Make sure row 1 holds every field name and return the header order to map against.

    Raises SchemaReadFailed / SchemaWriteFailed from the sheets client.
    """
    field_names = list(field_names)
    current = sheets.read_headers(spreadsheet_id, sheet_name)
    headers = reconcile_headers(current, field_names)
    if len(headers) == len(current):
        return headers

    # Another invocation may have extended the row since the first read.
    latest = sheets.read_headers(spreadsheet_id, sheet_name)
    headers = reconcile_headers(latest, field_names)
    if len(headers) == len(latest):
        return headers

    added = headers[len(latest):]
    logger.info(f"Adding {len(added)} column(s) to '{sheet_name}': {added}")
    sheets.write_headers(spreadsheet_id, sheet_name, headers)
    return headers
