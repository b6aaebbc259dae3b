"""Error kinds raised by the handlers and the storage pipeline.

Every error carries the HTTP status it maps to; ``formpay.main`` renders any
``FormpayError`` that escapes a route as ``{"error": <message>}``.
"""


class FormpayError(Exception):
    status_code = 500


class SignatureInvalid(FormpayError):
    status_code = 400


class MalformedRequest(FormpayError):
    status_code = 400


class CredentialsMissing(FormpayError):
    """A secret or credential the handler needs is not configured."""


class CheckoutFailed(FormpayError):
    pass


class FormConfigFailed(FormpayError):
    pass


class StorageError(FormpayError):
    """Base for spreadsheet failures. Never surfaced to the payment provider."""

    status_code = 502


class SchemaReadFailed(StorageError):
    pass


class SchemaWriteFailed(StorageError):
    pass


class AppendFailed(StorageError):
    pass


class CosmeticFormattingFailed(StorageError):
    pass
