"""FastAPI entrypoint and HTTP routes."""

from __future__ import annotations

import asyncio

from fastapi import FastAPI, File, HTTPException, UploadFile, status
from fastapi.responses import PlainTextResponse, Response
from prometheus_client import generate_latest

from molayeri.config.settings import get_settings
from molayeri.imgproc.batch import UNUSABLE_FILE_MESSAGE
from molayeri.imgproc.errors import DecodeError, EncodeError
from molayeri.imgproc.normalize import NormalizationOptions, PhotoNormalizer
from molayeri.monitoring.logging import configure_logging


def create_app() -> FastAPI:
    """Initialise the FastAPI application."""

    settings = get_settings()
    configure_logging()
    app = FastAPI(
        title="MolaYeri Photo Service",
        version="0.1.0",
        docs_url="/docs" if settings.environment != "prod" else None,
        redoc_url="/redoc" if settings.environment != "prod" else None,
    )
    normalizer = PhotoNormalizer(NormalizationOptions.from_settings(settings))

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Simple health endpoint used by readiness checks."""

        return {"status": "ok"}

    @app.get("/metrics", include_in_schema=False)
    async def metrics() -> PlainTextResponse:
        return PlainTextResponse(generate_latest().decode("utf-8"))

    @app.post("/photos/normalize", tags=["photos"])
    async def normalize_photo(file: UploadFile = File(...)) -> Response:
        """Return the uploaded image as a cropped, size-budgeted JPEG."""

        content_type = file.content_type or ""
        if not content_type.lower().startswith("image/"):
            raise HTTPException(
                status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
                detail="Only image uploads are accepted.",
            )

        data = await file.read()
        try:
            photo = await asyncio.to_thread(normalizer.normalize, data, file.filename)
        except (DecodeError, EncodeError) as exc:
            raise HTTPException(
                status_code=422,
                detail=UNUSABLE_FILE_MESSAGE,
            ) from exc

        return Response(
            content=photo.data,
            media_type=photo.content_type,
            headers={
                "X-Photo-Size": str(photo.size_bytes),
                "X-Photo-Quality": f"{photo.quality:.2f}",
                "X-Photo-Within-Budget": "true" if photo.within_budget else "false",
                "X-Photo-Width": str(photo.width),
                "X-Photo-Height": str(photo.height),
            },
        )

    return app


app = create_app()
