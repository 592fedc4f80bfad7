"""
Photo fraud guard for dump reports
Fingerprints photo content and refuses photos that were already submitted
"""

import base64
import binascii
import hashlib
import logging
import re
from typing import Union

from dumpwatch.core.constants import MIN_PHOTO_BASE64_LENGTH
from dumpwatch.core.entities import PhotoFingerprint
from dumpwatch.core.exceptions import DuplicatePhoto, InvalidPhoto
from dumpwatch.database.repositories import FingerprintRepository

logger = logging.getLogger(__name__)

DATA_URL_PATTERN = re.compile(r"^data:image/(\w+);base64,(.*)$", re.DOTALL)


class PhotoFraudGuard:
    """
    Detects photo reuse across submissions.

    The fingerprint is a SHA-256 digest of the decoded image bytes, so the
    same photo sent with or without a data URL preamble is still caught.
    """

    def __init__(self, min_base64_length: int = MIN_PHOTO_BASE64_LENGTH):
        """
        Initialize the guard.

        Args:
            min_base64_length: Smallest accepted base64 payload, in characters
        """
        self.min_base64_length = min_base64_length
        self.min_bytes = (min_base64_length * 3) // 4

    def decode(self, payload: Union[str, bytes]) -> bytes:
        """
        Turn a submitted photo payload into raw image bytes.

        Args:
            payload: Base64 string (optionally a ``data:image/...;base64,``
                URL) or already-decoded bytes

        Returns:
            Decoded photo bytes

        Raises:
            InvalidPhoto: malformed, non-image or undersized payload
        """
        if isinstance(payload, (bytes, bytearray)):
            if len(payload) < self.min_bytes:
                raise InvalidPhoto("Photo data is too small")
            return bytes(payload)

        if not isinstance(payload, str):
            raise InvalidPhoto("Photo data is required")

        data = payload.strip()
        if data.startswith("data:"):
            match = DATA_URL_PATTERN.match(data)
            if not match:
                raise InvalidPhoto("Invalid photo format")
            data = match.group(2)

        # Base64 wrapped across lines is still the same photo
        data = "".join(data.split())
        if len(data) < self.min_base64_length:
            raise InvalidPhoto("Photo data is required")

        try:
            photo_bytes = base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise InvalidPhoto("Invalid photo format") from e

        if len(photo_bytes) < self.min_bytes:
            raise InvalidPhoto("Photo data is too small")
        return photo_bytes

    def fingerprint(self, photo_bytes: bytes) -> str:
        """Hex SHA-256 digest of the photo bytes."""
        return hashlib.sha256(photo_bytes).hexdigest()

    def check_and_register(
        self,
        fingerprints: FingerprintRepository,
        fingerprint: str,
        uploader: str
    ) -> PhotoFingerprint:
        """
        Register a fingerprint inside the caller's transaction.

        Raises:
            DuplicatePhoto: the fingerprint is already registered
        """
        existing = fingerprints.get(fingerprint)
        if existing is not None:
            logger.warning(
                f"Duplicate photo {fingerprint[:12]} from {uploader}, "
                f"first uploaded by {existing.uploaded_by}"
            )
            raise DuplicatePhoto(fingerprint)

        return fingerprints.add(fingerprint, uploader)
