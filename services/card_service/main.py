import asyncio
import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Body, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from . import __version__
from .assets import fetch_and_embed
from .config import (
    CARD_FONT_FAMILY,
    CARD_FONT_FILE,
    CORS_ALLOW_ORIGINS,
    COVER_FONT_FAMILY,
    COVER_FONT_FILE,
    FONT_SPECS,
    FONTS_DIR,
    HOST,
    LOG_LEVEL,
    PORT,
)
from .errors import CardServiceError
from .fonts import FontLoadReport, FontRegistry, load_font_registry
from .params import COVER_FILENAME, CardParams, CoverParams, card_filename
from .render import render_card_png, render_cover_png, require_fonts

# Configure logging
logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

EXAMPLE_REQUESTS = {
    "card": {
        "endpoint": "POST /api/generate-card",
        "body": {
            "mainTitle": "Popular Movies 2026",
            "title": "Inception",
            "image": "https://example.com/movie-poster.jpg",
            "rating": 5,
            "year": 2026,
            "genre": "Sci-Fi",
            "description": "A mind-bending thriller about dreams within dreams.",
            "width": 1080,
            "height": 1350,
        },
    },
    "cover": {
        "endpoint": "POST /api/generate-cover",
        "body": {
            "title": "Movies You Need To Watch",
            "backgroundColor": "#1e90ff",
            "width": 1080,
            "height": 1350,
        },
    },
}


def _fonts(request: Request) -> FontRegistry:
    return request.app.state.fonts


def _png_response(png: bytes, filename: str) -> Response:
    return Response(
        content=png,
        media_type="image/png",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/generate-card")
async def generate_card(request: Request, payload: Optional[CardParams] = Body(None)):
    """Render the movie card template to PNG."""
    params = payload or CardParams()
    fonts = _fonts(request)
    try:
        require_fonts(fonts, CARD_FONT_FAMILY, CARD_FONT_FILE)
        # Fetch and render off the event loop so other requests keep flowing
        image = await asyncio.to_thread(fetch_and_embed, params.image)
        png = await asyncio.to_thread(render_card_png, params, image, fonts)
    except CardServiceError:
        raise
    except Exception as e:
        logger.exception("Error generating card")
        raise CardServiceError("Failed to generate movie card", details=str(e) or e.__class__.__name__) from e
    return _png_response(png, card_filename(params.title))


@router.post("/generate-cover")
async def generate_cover(request: Request, payload: Optional[CoverParams] = Body(None)):
    """Render the cover slide template to PNG."""
    params = payload or CoverParams()
    fonts = _fonts(request)
    try:
        require_fonts(fonts, COVER_FONT_FAMILY, COVER_FONT_FILE)
        png = await asyncio.to_thread(render_cover_png, params, fonts)
    except CardServiceError:
        raise
    except Exception as e:
        logger.exception("Error generating cover")
        raise CardServiceError("Failed to generate cover slide", details=str(e) or e.__class__.__name__) from e
    return _png_response(png, COVER_FILENAME)


@router.get("/health")
async def health(request: Request):
    """Liveness probe; also reports which template fonts loaded."""
    fonts = _fonts(request)
    report: FontLoadReport = request.app.state.font_report
    card_ok = fonts.has_family(CARD_FONT_FAMILY)
    return {
        "status": "ok",
        "fontLoaded": card_ok,
        "fonts": {
            "card": card_ok,
            "cover": fonts.has_family(COVER_FONT_FAMILY),
        },
        "fontFiles": {
            "loaded": [spec.filename for spec in report.loaded],
            "missing": [spec.filename for spec in report.missing],
        },
    }


@router.get("/example")
async def example():
    """Example request bodies for both render endpoints."""
    return EXAMPLE_REQUESTS


async def _service_error_handler(request: Request, exc: CardServiceError):
    if exc.status_code >= 500:
        logger.error(f"{request.url.path}: {exc.message} ({exc.details})")
    else:
        logger.warning(f"{request.url.path}: {exc.message} ({exc.details})")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def _validation_error_handler(request: Request, exc: RequestValidationError):
    details = [
        {"loc": [str(p) for p in err.get("loc", ())], "msg": err.get("msg", "")}
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"error": "Invalid request body", "details": details})


def create_app(fonts_dir: Optional[Path] = None) -> FastAPI:
    """Build the app and load the font registry once for its lifetime."""
    app = FastAPI(title="Movie Card API", version=__version__)

    # If wildcard is present, set credentials False and pass ["*"] per Starlette rules
    use_wildcard = "*" in CORS_ALLOW_ORIGINS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if use_wildcard else CORS_ALLOW_ORIGINS,
        allow_credentials=not use_wildcard,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    report = load_font_registry(fonts_dir or FONTS_DIR, FONT_SPECS)
    if report.missing:
        logger.warning(
            "Missing fonts: "
            + ", ".join(spec.filename for spec in report.missing)
            + "; the endpoints that need them will return 500 until restart"
        )
    app.state.fonts = report.registry
    app.state.font_report = report

    app.add_exception_handler(CardServiceError, _service_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    logger.info(f"Movie Card API running at http://localhost:{PORT}")
    logger.info(f"Example: GET http://localhost:{PORT}/api/example")
    logger.info(f"Health: GET http://localhost:{PORT}/api/health")
    uvicorn.run(app, host=HOST, port=PORT)
