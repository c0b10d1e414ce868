import base64
import binascii
import io
import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import unquote, unquote_to_bytes

import requests
from PIL import Image

from .config import ASSET_FETCH_TIMEOUT_S
from .errors import AssetFetchError

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "image/jpeg"


@dataclass(frozen=True)
class EmbeddedImage:
    """Image bytes tagged with their content type, ready to inline as a data URL."""

    content_type: str
    data: bytes

    @property
    def is_svg(self) -> bool:
        return self.content_type == "image/svg+xml"

    @property
    def data_uri(self) -> str:
        b64 = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.content_type};base64,{b64}"

    @classmethod
    def from_data_uri(cls, uri: str) -> "EmbeddedImage":
        """Decode a ``data:`` URL. Raises ValueError when it is malformed."""
        if not uri.startswith("data:") or "," not in uri:
            raise ValueError("not a data URL")
        header, data_part = uri.split(",", 1)
        mime = normalize_content_type(unquote(header[5:].split(";")[0]))
        if ";base64" in header:
            try:
                raw = base64.b64decode(data_part, validate=True)
            except (binascii.Error, ValueError) as e:
                raise ValueError(f"invalid base64 payload: {e}") from e
        else:
            raw = unquote_to_bytes(data_part)
        return cls(content_type=mime, data=raw)

    def __repr__(self) -> str:
        return f"EmbeddedImage(content_type={self.content_type!r}, size={len(self.data)})"


def normalize_content_type(raw: Optional[str]) -> str:
    """Strip parameters and lowercase; fall back to image/jpeg when missing or malformed."""
    ct = (raw or "").split(";", 1)[0].strip().lower()
    if not ct or "/" not in ct or ct.startswith("/") or ct.endswith("/"):
        return DEFAULT_CONTENT_TYPE
    if ct == "application/octet-stream":
        return DEFAULT_CONTENT_TYPE
    return ct


def _looks_like_non_image(content_type: str) -> bool:
    # SVG is refused too: caller-supplied markup must not reach the SVG parser
    if content_type == "image/svg+xml":
        return True
    return content_type.startswith(("text/", "application/json", "application/xml", "application/xhtml"))


def _check_decodes(data: bytes) -> None:
    """Raise ValueError unless Pillow recognizes ``data`` as an intact image."""
    try:
        with Image.open(io.BytesIO(data)) as im:
            im.verify()
    except (OSError, ValueError, SyntaxError, Image.DecompressionBombError) as e:
        raise ValueError(f"cannot decode image payload: {e}") from e


def fetch_and_embed(url: str) -> EmbeddedImage:
    """Fetch ``url`` once and return its bytes as an EmbeddedImage.

    ``data:`` URLs are decoded in place. Transport errors, non-2xx statuses,
    empty bodies, explicitly non-image responses and bytes Pillow cannot
    decode raise AssetFetchError.
    No retries and no caching.
    """
    url = (url or "").strip()
    if not url:
        raise AssetFetchError("Failed to fetch image from URL", details="No image URL provided")

    if url.startswith("data:"):
        try:
            image = EmbeddedImage.from_data_uri(url)
        except ValueError as e:
            raise AssetFetchError("Failed to fetch image from URL", details=f"Malformed data URL: {e}") from e
        if not image.data or _looks_like_non_image(image.content_type):
            raise AssetFetchError("Failed to fetch image from URL", details=f"Unsupported data URL type {image.content_type}")
        try:
            _check_decodes(image.data)
        except ValueError as e:
            raise AssetFetchError("Failed to fetch image from URL", details=f"Undecodable data URL payload: {e}") from e
        return image

    try:
        resp = requests.get(url, timeout=ASSET_FETCH_TIMEOUT_S)
        resp.raise_for_status()
        body = resp.content
    except requests.RequestException as e:
        logger.warning(f"Error fetching image {url}: {e}")
        raise AssetFetchError("Failed to fetch image from URL", details=str(e)) from e

    if not body:
        logger.warning(f"Empty image body from {url}")
        raise AssetFetchError("Failed to fetch image from URL", details="Empty response body")

    content_type = normalize_content_type(resp.headers.get("Content-Type"))
    if _looks_like_non_image(content_type):
        logger.warning(f"Rejecting non-image response from {url}: content_type={content_type!r}")
        raise AssetFetchError("Failed to fetch image from URL", details=f"Unexpected content type {content_type}")

    try:
        _check_decodes(body)
    except ValueError as e:
        logger.warning(f"Rejecting undecodable image from {url}: {e}")
        raise AssetFetchError("Failed to fetch image from URL", details=str(e)) from e

    logger.info(f"Fetched image {url} ({len(body)} bytes, {content_type})")
    return EmbeddedImage(content_type=content_type, data=body)
