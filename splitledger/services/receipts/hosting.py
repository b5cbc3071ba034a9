"""
Receipt Image Hosting using Cloudinary

DESIGN DECISION: Receipt photos are stored with Cloudinary because:
1. The expense keeps a link to its receipt (receipt_image_url)
2. The scanner can fetch the image by URL
3. Free tier is plenty for a group of friends

Before uploading, Pillow checks that the bytes really are an image in a
supported format and flags photos that will be hard to read. Unreadable
files are rejected; readability problems are returned as hints.
"""

import hashlib
from io import BytesIO
from typing import Optional
from uuid import UUID, uuid4

import cloudinary
import cloudinary.uploader
from PIL import Image, UnidentifiedImageError
from tenacity import retry, stop_after_attempt, wait_exponential

from splitledger.config import get_settings
from splitledger.models.draft import HostedReceipt


MIN_DIMENSION = 300


class ReceiptUploadError(Exception):
    """The receipt image could not be accepted or stored."""
    pass


class CloudinaryReceiptStore:
    """
    Uploads receipt photos to Cloudinary.

    Flow:
    1. Receive raw image bytes
    2. Check format, size and readability with Pillow
    3. Upload into the receipts folder
    4. Return the hosted URL
    """

    def __init__(self):
        self._settings = get_settings().cloudinary
        self._ledger_settings = get_settings().ledger
        self._configured = False

    def _configure(self):
        """Configure Cloudinary SDK."""
        if not self._configured:
            cloudinary.config(
                cloud_name=self._settings.cloud_name,
                api_key=self._settings.api_key,
                api_secret=self._settings.api_secret,
                secure=True,
            )
            self._configured = True

    @staticmethod
    def _public_id(receipt_id: UUID, filename: str) -> str:
        filename_hash = hashlib.md5(filename.encode()).hexdigest()[:8]
        return f"{receipt_id}_{filename_hash}"

    def inspect_image(self, image_bytes: bytes) -> tuple[int, int, list[str]]:
        """
        Check that the bytes are a usable receipt photo.

        Returns: (width, height, readability_hints)

        Raises:
            ReceiptUploadError: If the file is empty, too large, not an
                image, or in an unsupported format
        """
        if not image_bytes:
            raise ReceiptUploadError("The uploaded file is empty")

        if len(image_bytes) > self._ledger_settings.max_upload_size_bytes:
            raise ReceiptUploadError(
                f"Image is larger than {self._ledger_settings.max_upload_size_mb} MB"
            )

        try:
            img = Image.open(BytesIO(image_bytes))
            img.load()
        except (UnidentifiedImageError, OSError) as e:
            raise ReceiptUploadError(f"File is not a readable image: {e}")

        image_format = (img.format or "").lower()
        supported = self._ledger_settings.supported_formats_list
        if image_format not in supported:
            raise ReceiptUploadError(
                f"Unsupported image format '{img.format}'. "
                f"Use one of: {', '.join(supported)}"
            )

        width, height = img.size
        hints = []

        if min(width, height) < MIN_DIMENSION:
            hints.append(
                f"Image resolution is low (under {MIN_DIMENSION}px), "
                "amounts may be misread"
            )

        gray = img.convert("L")
        histogram = gray.histogram()
        total_pixels = sum(histogram) or 1
        if sum(histogram[:50]) / total_pixels > 0.7:
            hints.append("Image is very dark - take the photo in better lighting")
        if sum(histogram[200:]) / total_pixels > 0.9:
            hints.append("Image is overexposed or mostly blank")

        return width, height, hints

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _upload(self, image_bytes: bytes, public_id: str) -> dict:
        return cloudinary.uploader.upload(
            image_bytes,
            public_id=public_id,
            folder=self._settings.receipts_folder,
            resource_type="image",
        )

    async def upload_receipt(
        self,
        image_bytes: bytes,
        filename: str,
        receipt_id: Optional[UUID] = None,
    ) -> HostedReceipt:
        """
        Validate and upload a receipt photo.

        Args:
            image_bytes: Raw image bytes
            filename: Original filename, kept for the audit trail
            receipt_id: Optional id to upload under

        Returns:
            HostedReceipt with the public URL

        Raises:
            ReceiptUploadError: If the image is rejected or the upload fails
        """
        width, height, hints = self.inspect_image(image_bytes)
        self._configure()

        receipt_id = receipt_id or uuid4()
        try:
            result = self._upload(image_bytes, self._public_id(receipt_id, filename))
        except cloudinary.exceptions.Error as e:
            raise ReceiptUploadError(f"Cloudinary error: {e}")
        except Exception as e:
            raise ReceiptUploadError(f"Failed to upload receipt: {e}")

        url = result.get("secure_url", result.get("url", ""))
        if not url:
            raise ReceiptUploadError("No URL returned from Cloudinary")

        return HostedReceipt(
            receipt_id=receipt_id,
            original_filename=filename,
            url=url,
            width=width,
            height=height,
            quality_issues=hints,
        )
