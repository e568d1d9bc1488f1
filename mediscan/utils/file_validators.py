"""
File validation utilities for MediScan AI.

Pre-flight checks on an uploaded scan image:
- Declared content type must be an image type
- File must not be empty
- File size limits
"""

from typing import Optional, Tuple

from mediscan.config import settings


class ScanValidationError(Exception):
    """Raised when an uploaded file is rejected before any side effect."""

    def __init__(self, message: str, error_code: str = "VALIDATION_ERROR"):
        self.message = message
        self.error_code = error_code
        super().__init__(self.message)


class ImageUploadValidator:
    """
    Validates uploaded scan images.

    Only the declared media type and the payload size are checked; the
    bytes themselves are passed on to the model untouched.
    """

    IMAGE_MIME_PREFIX = "image/"

    def __init__(self, max_file_size: Optional[int] = None):
        self.max_file_size = max_file_size or settings.max_file_size_bytes

    @property
    def max_file_size_mb(self) -> float:
        return self.max_file_size / (1024 * 1024)

    def validate_content_type(self, content_type: Optional[str], filename: str) -> bool:
        """
        Check that the declared media type is an image type.

        Raises:
            ScanValidationError: If the type is missing or not image/*
        """
        media_type = (content_type or "").split(";")[0].strip().lower()
        if not media_type.startswith(self.IMAGE_MIME_PREFIX):
            raise ScanValidationError(
                f"Please upload an image file ('{filename}' is {media_type or 'of unknown type'})",
                error_code="INVALID_MEDIA_TYPE"
            )
        return True

    def validate_file_size(self, file_content: bytes, filename: str) -> bool:
        """
        Check if file is non-empty and within size limits.

        Raises:
            ScanValidationError: If file is empty or exceeds size limit
        """
        if len(file_content) == 0:
            raise ScanValidationError(
                "Empty file uploaded",
                error_code="EMPTY_FILE"
            )
        if len(file_content) > self.max_file_size:
            raise ScanValidationError(
                f"File '{filename}' exceeds maximum size of {self.max_file_size_mb:g}MB",
                error_code="FILE_TOO_LARGE"
            )
        return True

    def validate(
        self,
        file_content: bytes,
        filename: str,
        content_type: Optional[str]
    ) -> Tuple[bool, Optional[str], Optional[str]]:
        """
        Validate an uploaded scan image.

        Args:
            file_content: Raw file bytes
            filename: Original filename
            content_type: Declared MIME type

        Returns:
            Tuple of (is_valid, error_message, error_code)
        """
        try:
            self.validate_content_type(content_type, filename)
            self.validate_file_size(file_content, filename)
        except ScanValidationError as e:
            return False, e.message, e.error_code

        return True, None, None


# Singleton instance for easy access
file_validator = ImageUploadValidator()
