"""Error taxonomy of the versioning subsystem and its HTTP mapping."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class VersioningError(Exception):
    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFoundError(VersioningError):
    """Document or version does not exist (or was deleted)."""

    status_code = 404


class ValidationError(VersioningError):
    status_code = 400


class CorruptDataError(VersioningError):
    """Stored payload cannot be decompressed or reconstructed."""

    status_code = 500


class PatchApplyError(CorruptDataError):
    pass


class ConflictError(VersioningError):
    """Reserved for strict conflict rejection; last-write-wins never raises it."""

    status_code = 409


def setup_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(VersioningError)
    async def versioning_error_handler(request: Request, exc: VersioningError) -> JSONResponse:
        if isinstance(exc, CorruptDataError):
            logger.error(
                "Corrupt version data",
                exc_info=exc,
                extra={"path": request.url.path, "method": request.method},
            )
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})
