# portal/api/v1/ai.py
import json
import logging

from fastapi import APIRouter, Depends, Request
from starlette.datastructures import UploadFile
from pydantic import ValidationError as PydanticValidationError

from portal.api.deps import require_admin
from portal.core.errors import ValidationError, field_errors
from portal.core.responses import success_response
from portal.models.common import GenerateQuestionsIn
from portal.policy.access import Principal
from portal.repositories.base import _now
from portal.services.ai_generation import GenerationRequest, generate_questions
from portal.services.uploads import read_text, temporary_upload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai", tags=["ai"])


def _parse(raw: dict) -> GenerateQuestionsIn:
    try:
        return GenerateQuestionsIn.model_validate(raw)
    except PydanticValidationError as exc:
        raise ValidationError("Validation failed", errors=field_errors(exc.errors())) from exc


@router.post("/generate-questions")
async def generate(request: Request, principal: Principal = Depends(require_admin)):
    """Accepts JSON, or multipart form fields with an optional `resume` file."""
    resume_text = None
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("multipart/form-data"):
        form = await request.form()
        fields = {k: v for k, v in form.items() if isinstance(v, str) and v != ""}
        params = _parse(fields)
        upload = form.get("resume")
        if isinstance(upload, UploadFile):
            async with temporary_upload(upload) as path:
                resume_text = await read_text(path)
    else:
        try:
            body = await request.json()
        except json.JSONDecodeError:
            body = {}
        params = _parse(body if isinstance(body, dict) else {})

    req = GenerationRequest(
        prompt=params.prompt,
        count=params.count,
        difficulty=params.difficulty,
        type=params.type,
        subject=params.subject,
        resume_text=resume_text,
    )
    result = await generate_questions(req, principal_id=principal.id)
    logger.info("Generated %d questions for %s (fallback=%s)", len(result.questions), principal.id, result.fallback)
    return success_response(
        "Questions generated successfully",
        {
            "questions": result.questions,
            "metadata": {
                "count": len(result.questions),
                "difficulty": req.difficulty,
                "type": req.type,
                "subject": req.subject,
                "fallback": result.fallback,
                "reason": result.reason,
                "generated_at": _now().isoformat(),
                **result.metadata,
            },
        },
    )
