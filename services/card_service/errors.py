"""Error taxonomy shared by the render pipeline and the HTTP layer.

Every error carries the HTTP status it maps to so the transport shell can
turn it into a JSON body without knowing where it came from.
"""
from typing import Any, Dict, Optional


class CardServiceError(Exception):
    status_code = 500

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ConfigurationError(CardServiceError):
    """A font the template needs was not loaded at startup."""

    status_code = 500


class AssetFetchError(CardServiceError):
    """The remote image could not be fetched or is not an image."""

    status_code = 400


class RenderError(CardServiceError):
    """Layout, vector or raster stage failed."""

    status_code = 500
