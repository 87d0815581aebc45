"""
Error taxonomy shared by the server routes and the session core
"""
from __future__ import annotations

from typing import Optional


class FlashQuizError(Exception):
    """Base class for every error raised on purpose by flashquiz"""

    message = "Unexpected error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class NotConfigured(FlashQuizError):
    message = "Required service is not configured"


class ProviderNotConfigured(NotConfigured):
    message = "Generation provider is not configured"


class InvalidCredentials(FlashQuizError):
    # One message for unknown email and wrong password.
    message = "Invalid credentials"


class AlreadyExists(FlashQuizError):
    message = "User already exists"


class NotFound(FlashQuizError):
    message = "Record not found"


class StoreError(FlashQuizError):
    message = "Data store error"


class StoreWriteFailed(StoreError):
    message = "Failed to write to data store"


class DocumentError(FlashQuizError):
    message = "Failed to extract text from document"


class UnsupportedFileType(DocumentError):
    message = "Unsupported file type. Please upload a PDF, DOCX, or TXT file."


class EmptyOrImageOnlyDocument(DocumentError):
    message = "No text content found. The file may be image-based or empty."


class ExtractionFailed(DocumentError):
    pass


class GenerationFailed(FlashQuizError):
    message = "Failed to generate study material"
