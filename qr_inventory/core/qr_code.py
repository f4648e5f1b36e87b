"""
QR code validation - item codes are exactly 17 alphanumeric characters
"""
from .config import settings
from .exceptions import InvalidRequestError


def normalize_qr_code(qr_code) -> str:
    """
    Validate an item code and return it upper-cased.

    Surrounding whitespace left by scanners is dropped before the length check.
    """
    if not isinstance(qr_code, str):
        raise InvalidRequestError("QR code is required", field="qr_code")

    code = qr_code.strip().upper()
    if len(code) != settings.QR_CODE_LENGTH:
        raise InvalidRequestError(
            f"QR code must be exactly {settings.QR_CODE_LENGTH} characters (got {len(code)})",
            field="qr_code",
        )
    if not code.isascii() or not code.isalnum():
        raise InvalidRequestError("QR code must be alphanumeric", field="qr_code")
    return code
