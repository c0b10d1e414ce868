import base64
import io
import logging
from time import perf_counter
from urllib.parse import unquote_to_bytes

from PIL import Image

from .colors import hex_to_rgb, parse_color
from .compositor import VectorDocument
from .errors import RenderError

logger = logging.getLogger(__name__)


def _data_url_fetcher(url: str, *_args, **_kwargs) -> bytes:
    """Serve only inline data: URLs to CairoSVG; documents never reference the network."""
    if not url.startswith("data:") or "," not in url:
        raise RenderError("External resource in vector document", details=url[:64])
    header, data_part = url.split(",", 1)
    if ";base64" in header:
        return base64.b64decode(data_part)
    return unquote_to_bytes(data_part)


def rasterize(doc: VectorDocument, width: int, background: str = "#000000") -> bytes:
    """Render ``doc`` fit to ``width`` (height follows the aspect ratio), flatten onto
    an opaque ``background`` and return PNG bytes."""
    t0 = perf_counter()
    try:
        bg_hex, _ = parse_color(background)
    except ValueError as e:
        raise RenderError("Invalid background color", details=str(e)) from e

    # cairosvg is lazily imported in the render path to avoid startup failures
    try:
        import cairosvg
    except (ImportError, OSError) as e:
        raise RenderError("Rasterizer unavailable", details=f"CairoSVG or its native cairo library is missing: {e}") from e

    try:
        png_bytes = cairosvg.svg2png(
            bytestring=doc.svg.encode("utf-8"),
            output_width=int(width),
            url_fetcher=_data_url_fetcher,
        )
    except RenderError:
        raise
    except Exception as e:
        logger.error(f"CairoSVG failed to render document: {e}")
        raise RenderError("Failed to rasterize vector document", details=str(e) or e.__class__.__name__) from e

    # Flatten any transparency onto the background so the output is fully opaque
    try:
        with Image.open(io.BytesIO(png_bytes)) as im:
            rgba = im.convert("RGBA")
            flattened = Image.new("RGB", rgba.size, hex_to_rgb(bg_hex))
            flattened.paste(rgba, mask=rgba.split()[-1])
        buf = io.BytesIO()
        flattened.save(buf, format="PNG")
    except (OSError, ValueError) as e:
        raise RenderError("Failed to encode PNG", details=str(e)) from e

    out = buf.getvalue()
    logger.info(f"rasterize: {flattened.size[0]}x{flattened.size[1]} png_bytes={len(out)} elapsed={perf_counter() - t0:.3f}s")
    return out
