"""
Receipt Scanning using Mindee

DESIGN DECISION: We use Mindee's receipt model because:
1. Returns STRUCTURED data (merchant, totals, tax, tip, line items)
2. Provides per-field confidence scores
3. No prompt engineering needed for a well-known document type

This service handles:
1. Sending a receipt image (bytes or hosted URL) to Mindee
2. Rejecting images that are clearly not receipts
3. Converting the prediction into a ReceiptDraft

CRITICAL: The scanner only proposes. Amounts it reads are shown to the
user and resolved by the draft validator before anything is saved.
"""

from decimal import Decimal, InvalidOperation
from typing import Optional

from mindee import Client
from mindee.product import ReceiptV5
from tenacity import retry, stop_after_attempt, wait_exponential

from splitledger.config import get_settings
from splitledger.models.draft import ReceiptDraft
from splitledger.models.ledger import ReceiptItem


DESCRIPTION_MAX_LENGTH = 40

# Below this mean confidence the image is treated as "not a receipt"
REJECT_CONFIDENCE = 0.2


class ReceiptScanError(Exception):
    """Base exception for receipt scanning errors."""
    pass


class ReceiptRejectedError(ReceiptScanError):
    """The image does not look like a receipt."""
    pass


def _safe_decimal(value) -> Optional[Decimal]:
    """Safely convert a Mindee float/None to a cent Decimal."""
    if value is None:
        return None
    try:
        amount = Decimal(str(value)).quantize(Decimal("0.01"))
    except (InvalidOperation, TypeError, ValueError):
        return None
    return amount if amount >= 0 else None


def _field_value(prediction, name: str):
    field = getattr(prediction, name, None)
    return getattr(field, "value", None) if field is not None else None


class MindeeReceiptScanner:
    """
    Receipt scanner backed by Mindee ReceiptV5.

    IMPORTANT BOUNDARIES:
    1. This service ONLY extracts data - it does NOT resolve names or
       check consistency
    2. This service REJECTS non-receipt images loudly
    3. Confidence scores are preserved for downstream validation
    """

    def __init__(self):
        self._settings = get_settings().mindee
        self._client: Optional[Client] = None

    def _get_client(self) -> Client:
        """Get or create Mindee client."""
        if self._client is None:
            self._client = Client(api_key=self._settings.api_key)
        return self._client

    @staticmethod
    def _extract_items(mindee_items) -> list[ReceiptItem]:
        items = []
        for line in mindee_items or []:
            price = _safe_decimal(getattr(line, "total_amount", None))
            if price is None:
                unit_price = _safe_decimal(getattr(line, "unit_price", None))
                quantity = getattr(line, "quantity", None)
                if unit_price is not None and quantity:
                    price = _safe_decimal(unit_price * Decimal(str(quantity)))
            if price is None:
                continue
            name = (getattr(line, "description", None) or "Item").strip() or "Item"
            items.append(ReceiptItem(name=name[:200], price=price))
        return items

    @staticmethod
    def prediction_to_draft(prediction, receipt_image_url: Optional[str] = None) -> ReceiptDraft:
        """
        Convert a ReceiptV5 prediction into a ReceiptDraft.

        The description is the merchant name, or the most expensive item
        when no merchant was read.

        Raises:
            ReceiptRejectedError: If no key field was read with any confidence
        """
        confidences = []
        for name in ("total_amount", "supplier_name", "date"):
            field = getattr(prediction, name, None)
            if field is not None and getattr(field, "value", None) is not None:
                confidences.append(getattr(field, "confidence", 0.0) or 0.0)

        confidence = sum(confidences) / len(confidences) if confidences else 0.0
        if confidence < REJECT_CONFIDENCE:
            raise ReceiptRejectedError(
                "This doesn't appear to be a receipt. "
                "Please upload a clear photo of the whole receipt."
            )

        items = MindeeReceiptScanner._extract_items(getattr(prediction, "line_items", None))

        description = _field_value(prediction, "supplier_name")
        if not description and items:
            description = max(items, key=lambda item: item.price).name
        if description:
            description = str(description).strip()[:DESCRIPTION_MAX_LENGTH] or None

        return ReceiptDraft(
            confidence_score=min(1.0, max(0.0, confidence)),
            description=description,
            subtotal=_safe_decimal(_field_value(prediction, "total_net")),
            tax=_safe_decimal(_field_value(prediction, "total_tax")),
            tip=_safe_decimal(_field_value(prediction, "tip")),
            total=_safe_decimal(_field_value(prediction, "total_amount")),
            items=items,
            receipt_image_url=receipt_image_url,
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _parse(self, input_source):
        response = self._get_client().parse(ReceiptV5, input_source)
        return response.document.inference.prediction

    async def scan_bytes(
        self,
        image_bytes: bytes,
        filename: str,
        receipt_image_url: Optional[str] = None,
    ) -> ReceiptDraft:
        """
        Scan receipt image bytes.

        Raises:
            ReceiptRejectedError: If the image is not a receipt
            ReceiptScanError: If Mindee fails
        """
        try:
            source = self._get_client().source_from_bytes(image_bytes, filename)
            prediction = self._parse(source)
        except Exception as e:
            raise ReceiptScanError(f"Failed to scan receipt: {e}")
        return self.prediction_to_draft(prediction, receipt_image_url)

    async def scan_url(self, receipt_image_url: str) -> ReceiptDraft:
        """
        Scan a receipt that is already hosted.

        Raises:
            ReceiptRejectedError: If the image is not a receipt
            ReceiptScanError: If Mindee fails
        """
        try:
            source = self._get_client().source_from_url(receipt_image_url)
            prediction = self._parse(source)
        except Exception as e:
            raise ReceiptScanError(f"Failed to scan receipt: {e}")
        return self.prediction_to_draft(prediction, receipt_image_url)
