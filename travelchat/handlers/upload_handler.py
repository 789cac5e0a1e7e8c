"""Image upload endpoint used by the chat attachment widget."""
from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from travelchat.dependencies import get_security_logger, get_upload_pipeline
from travelchat.models import UploadErrorKind, UploadOptions, UploadResult
from travelchat.services.audit_log import SecurityLogger
from travelchat.services.upload_pipeline import UploadPipeline
from travelchat.services.validator import UploadCandidate

router = APIRouter()
logger = logging.getLogger(__name__)

_SUSPICIOUS_REASONS = {"Dangerous file extension detected", "Malicious content detected", "File signature invalid"}


class InvalidOptionsError(ValueError):
    pass


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def parse_options(raw: str | None) -> UploadOptions:
    """Merge the client's JSON options over the defaults.

    The target directory is not an option; it always comes from
    ``Settings.upload_path``.
    """

    defaults = UploadOptions()
    if not raw:
        return defaults
    try:
        overrides: Any = json.loads(raw)
    except ValueError as exc:
        raise InvalidOptionsError("options is not valid JSON") from exc
    if not isinstance(overrides, dict):
        raise InvalidOptionsError("options must be a JSON object")
    try:
        return defaults.with_overrides(overrides)
    except ValueError as exc:
        raise InvalidOptionsError(str(exc)) from exc


def _status_for(result: UploadResult) -> int:
    if result.success:
        return 200
    if result.error_kind is UploadErrorKind.INPUT_VALIDATION:
        return 400
    return 500


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"success": False, "error": message}, status_code=status_code)


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.post("/api/upload")
async def upload_image(
    request: Request,
    file: UploadFile | None = File(None),
    options: str | None = Form(None),
    pipeline: UploadPipeline = Depends(get_upload_pipeline),
    audit: SecurityLogger = Depends(get_security_logger),
):
    try:
        if file is None:
            return _error("No file uploaded", 400)

        try:
            upload_options = parse_options(options)
        except InvalidOptionsError as exc:
            logger.info("Rejected upload options: %s", exc)
            return _error("Invalid upload options", 400)

        data = await file.read()
        candidate = UploadCandidate(
            filename=file.filename or "",
            content_type=file.content_type or "",
            data=data,
        )
        audit.log_upload_attempt(
            request,
            candidate.sanitized_filename,
            len(data),
            content_type=candidate.content_type,
        )

        result = await run_in_threadpool(pipeline.run, candidate, upload_options)

        if result.success:
            audit.log_upload_success(
                request,
                result.filename or "",
                result.size or 0,
                format=result.format,
                use_gcs_preview=result.use_gcs_preview,
            )
        else:
            audit.log_upload_failure(request, candidate.sanitized_filename, result.error or "")
            if result.error in _SUSPICIOUS_REASONS:
                audit.log_suspicious_activity(
                    request,
                    "rejected upload",
                    filename=candidate.sanitized_filename,
                    reason=result.error,
                )

        return JSONResponse(result.to_response(), status_code=_status_for(result))
    except Exception as exc:  # pragma: no cover - last-resort boundary
        logger.exception("Upload failed unexpectedly: %s", exc)
        return _error("Processing failed", 500)


@router.get("/api/upload")
async def upload_method_not_allowed():
    return JSONResponse({"error": "Method not allowed. Use POST to upload files."}, status_code=405)
