"""Barcode symbology selection for wallet passes."""

import structlog

from loyalty_sync.domain.offer import BarcodeFormat

logger = structlog.get_logger(__name__)

# Conservative PDF417 capacity for our payload alphabet
PDF417_MAX_PAYLOAD_LENGTH = 1850

APPLE_BARCODE_FORMATS = {
    BarcodeFormat.QR_CODE: "PKBarcodeFormatQR",
    BarcodeFormat.PDF417: "PKBarcodeFormatPDF417",
}

GOOGLE_BARCODE_TYPES = {
    BarcodeFormat.QR_CODE: "QR_CODE",
    BarcodeFormat.PDF417: "PDF_417",
}


def select_barcode_format(payload: str, preference: BarcodeFormat | None) -> BarcodeFormat:
    """
    Pick the barcode format for a serialized scan payload.

    PDF417 is used only when the business prefers it and the payload fits;
    otherwise the pass silently falls back to QR.

    Args:
        payload: Serialized scan payload, computed before calling
        preference: Business preference from the offer

    Returns:
        Format to render
    """
    if preference != BarcodeFormat.PDF417:
        return BarcodeFormat.QR_CODE

    if len(payload) > PDF417_MAX_PAYLOAD_LENGTH:
        logger.warning(
            "barcode_format_fallback",
            preferred=BarcodeFormat.PDF417.value,
            selected=BarcodeFormat.QR_CODE.value,
            payload_length=len(payload),
            max_length=PDF417_MAX_PAYLOAD_LENGTH,
        )
        return BarcodeFormat.QR_CODE

    return BarcodeFormat.PDF417
