# portal/services/ai_generation.py
"""
AI question generation with a deterministic fallback.

Every request ends in exactly one of two outcomes:

* provider result: the provider answered with parseable questions; a short
  list is padded with placeholders and a long one truncated to `count`.
* fallback result: no credentials, provider error, unparseable or empty
  output. The caller gets `count` placeholder questions instead.

Either way an audit entry records which path was taken. The provider is
called at most once per request.
"""
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from portal.core.config import settings
from portal.repositories.audit import record_audit
from portal.services import llm_client
from portal.services.placeholders import placeholder_questions

logger = logging.getLogger(__name__)

PROVIDER_RESULT = "provider_result"
FALLBACK_RESULT = "fallback_result"

DIFFICULTIES = ("easy", "medium", "hard")

_JSON_ARRAY = re.compile(r"\[[\s\S]*\]")
_LETTER = re.compile(r"^[A-Fa-f]$")
_OPTION_PREFIX = re.compile(r"^[A-Fa-f][\).:]\s*")


@dataclass
class GenerationRequest:
    prompt: str = "Generate technical questions"
    count: int = 5
    difficulty: str = "medium"
    type: str = "multiple_choice"
    subject: str = "General"
    resume_text: Optional[str] = None


@dataclass
class GenerationResult:
    outcome: str
    questions: List[Dict[str, Any]]
    reason: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def fallback(self) -> bool:
        return self.outcome == FALLBACK_RESULT


def build_prompt(req: GenerationRequest, max_chars: Optional[int] = None) -> str:
    limit = max_chars if max_chars is not None else settings.AI_PROMPT_MAX_CHARS
    header = (
        f"Generate exactly {req.count} {req.difficulty} {req.type} questions about {req.subject}.\n"
        f"Instructions: {req.prompt}\n"
    )
    rules = (
        "\nRequirements:\n"
        "- Return a STRICT JSON array only, no commentary before or after.\n"
        '- Each item: {"question": str, "type": str, "difficulty": str, "options": [str], '
        '"correct_answer": str, "explanation": str, "points": int}.\n'
        "- Multiple choice questions have exactly 4 options and correct_answer equal to one option.\n"
        '- True/false questions use correct_answer "true" or "false".\n'
    )
    resume = ""
    if req.resume_text:
        # the resume is the only unbounded part, so it absorbs the cut
        room = max(0, limit - len(header) - len(rules) - len("\nCandidate resume:\n"))
        resume = "\nCandidate resume:\n" + req.resume_text[:room]
    return (header + resume + rules)[:limit]


def parse_questions(text: str) -> List[Any]:
    """Pull the first JSON array out of the provider's text; raises ValueError when there is none."""
    if not text or not text.strip():
        raise ValueError("empty provider response")
    match = _JSON_ARRAY.search(text)
    raw = match.group(0) if match else text
    data = json.loads(raw)
    if isinstance(data, dict) and isinstance(data.get("questions"), list):
        data = data["questions"]
    if not isinstance(data, list):
        raise ValueError("provider response is not a JSON array")
    return data


def _resolve_answer(answer: Any, options: List[str]) -> Any:
    # providers often answer "B" for the second option
    if isinstance(answer, str) and _LETTER.match(answer.strip()) and options:
        idx = ord(answer.strip().upper()) - ord("A")
        if idx < len(options):
            return options[idx]
    return answer


def normalize_question(item: Any, req: GenerationRequest) -> Optional[Dict[str, Any]]:
    if not isinstance(item, dict):
        return None
    text = item.get("question")
    if not isinstance(text, str) or not text.strip():
        return None
    qtype = req.type
    difficulty = item.get("difficulty") if item.get("difficulty") in DIFFICULTIES else req.difficulty
    raw_options = item.get("options") or []
    if not isinstance(raw_options, list):
        return None
    options = [_OPTION_PREFIX.sub("", str(o)).strip() for o in raw_options if str(o).strip()]
    answer = item.get("correct_answer", item.get("correctAnswer"))
    try:
        points = int(item.get("points") or 1)
    except (TypeError, ValueError):
        points = 1

    if qtype == "multiple_choice":
        if len(options) < 2:
            return None
        options = options[:6]
        answer = _resolve_answer(answer, options)
        if answer not in options:
            return None
    elif qtype == "true_false":
        answer = str(answer).strip().lower() if answer is not None else ""
        if answer not in ("true", "false"):
            return None
        options = ["true", "false"]
    else:
        options = []

    return {
        "question": text.strip(),
        "type": qtype,
        "difficulty": difficulty,
        "points": max(1, points),
        "options": options,
        "correct_answer": answer,
        "explanation": str(item.get("explanation") or ""),
        "placeholder": False,
    }


def _fallback(req: GenerationRequest, reason: str) -> GenerationResult:
    return GenerationResult(
        outcome=FALLBACK_RESULT,
        questions=placeholder_questions(req.count, req.subject, req.difficulty, req.type),
        reason=reason,
    )


async def _attempt_provider(req: GenerationRequest, credentials: Dict[str, str]) -> GenerationResult:
    prompt = build_prompt(req)
    try:
        text = await llm_client.complete(prompt, settings.AI_MAX_TOKENS, settings.AI_TEMPERATURE,
                                         credentials=credentials)
    except Exception as exc:
        logger.warning("AI provider %s failed: %s", credentials.get("provider"), exc)
        return _fallback(req, "provider_error")

    try:
        raw_items = parse_questions(text)
    except ValueError as exc:
        logger.warning("Could not parse AI provider output: %s", exc)
        return _fallback(req, "parse_error")

    items = []
    for raw in raw_items:
        try:
            q = normalize_question(raw, req)
        except Exception:
            logger.warning("Dropping malformed AI question item", exc_info=True)
            continue
        if q is not None:
            items.append(q)
    if not items:
        return _fallback(req, "empty_result")

    padded = max(0, req.count - len(items))
    questions = items[: req.count] + placeholder_questions(padded, req.subject, req.difficulty, req.type,
                                                           start=len(items))
    return GenerationResult(
        outcome=PROVIDER_RESULT,
        questions=questions,
        metadata={"provider": credentials.get("provider"), "received": len(items), "padded": padded},
    )


async def generate_questions(req: GenerationRequest, principal_id: Optional[str] = None) -> GenerationResult:
    credentials = settings.ai_credentials()
    if not credentials:
        result = _fallback(req, "no_credentials")
    else:
        result = await _attempt_provider(req, credentials)

    if result.fallback:
        logger.info("AI generation fell back to placeholders (%s)", result.reason)
    await record_audit(
        principal_id,
        "ai_questions_generated",
        resource_type="question",
        details={
            "fallback": result.fallback,
            "reason": result.reason,
            "count": len(result.questions),
            "difficulty": req.difficulty,
            "type": req.type,
            "subject": req.subject,
            "has_resume": bool(req.resume_text),
        },
    )
    return result
