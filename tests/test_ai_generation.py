# tests/test_ai_generation.py
import json
from unittest.mock import AsyncMock

import pytest

from portal.core.config import settings
from portal.repositories.audit import AUDIT_COLLECTION
from portal.services import ai_generation, llm_client
from portal.services.ai_generation import GenerationRequest, build_prompt, generate_questions, parse_questions


def _provider_items(n, qtype="multiple_choice"):
    items = []
    for i in range(n):
        items.append({
            "question": f"What is {i}?",
            "options": ["A) one", "B) two", "C) three", "D) four"],
            "correctAnswer": "B",
            "difficulty": "easy",
            "type": qtype,
            "points": 2,
        })
    return items


@pytest.fixture
def with_credentials(monkeypatch):
    monkeypatch.setattr(settings, "OPENAI_API_KEY", "sk-test")


@pytest.mark.asyncio
@pytest.mark.parametrize("qtype", ["multiple_choice", "true_false", "essay"])
async def test_no_credentials_returns_placeholders_without_network(db, monkeypatch, qtype):
    fake = AsyncMock(return_value="[]")
    monkeypatch.setattr(llm_client, "complete", fake)

    result = await generate_questions(GenerationRequest(count=4, type=qtype, subject="SQL"), principal_id="u1")

    fake.assert_not_called()
    assert result.fallback
    assert result.reason == "no_credentials"
    assert len(result.questions) == 4
    assert all(q["type"] == qtype and q["placeholder"] for q in result.questions)
    assert all("SQL" in q["question"] for q in result.questions)


@pytest.mark.asyncio
async def test_placeholders_are_deterministic(db):
    req = GenerationRequest(count=3, type="true_false", difficulty="hard", subject="Go")
    first = await generate_questions(req)
    second = await generate_questions(req)
    assert first.questions == second.questions


@pytest.mark.asyncio
async def test_provider_result_is_normalised(db, monkeypatch, with_credentials):
    fake = AsyncMock(return_value="Here you go:\n" + json.dumps(_provider_items(3)) + "\nEnjoy")
    monkeypatch.setattr(llm_client, "complete", fake)

    result = await generate_questions(GenerationRequest(count=3))

    assert fake.await_count == 1
    assert not result.fallback
    assert len(result.questions) == 3
    q = result.questions[0]
    assert q["options"] == ["one", "two", "three", "four"]
    assert q["correct_answer"] == "two"
    assert q["points"] == 2
    assert q["placeholder"] is False


@pytest.mark.asyncio
async def test_short_provider_result_is_padded(db, monkeypatch, with_credentials):
    monkeypatch.setattr(llm_client, "complete", AsyncMock(return_value=json.dumps(_provider_items(2))))
    result = await generate_questions(GenerationRequest(count=5))
    assert not result.fallback
    assert len(result.questions) == 5
    assert [q["placeholder"] for q in result.questions] == [False, False, True, True, True]
    assert result.metadata["padded"] == 3


@pytest.mark.asyncio
async def test_long_provider_result_is_truncated(db, monkeypatch, with_credentials):
    monkeypatch.setattr(llm_client, "complete", AsyncMock(return_value=json.dumps(_provider_items(9))))
    result = await generate_questions(GenerationRequest(count=4))
    assert len(result.questions) == 4
    assert not any(q["placeholder"] for q in result.questions)


@pytest.mark.asyncio
@pytest.mark.parametrize("reply,reason", [
    ("sorry, I cannot help", "parse_error"),
    ("", "parse_error"),
    ("[]", "empty_result"),
    (json.dumps([{"question": ""}, {"nope": 1}]), "empty_result"),
])
async def test_unusable_output_falls_back(db, monkeypatch, with_credentials, reply, reason):
    monkeypatch.setattr(llm_client, "complete", AsyncMock(return_value=reply))
    result = await generate_questions(GenerationRequest(count=2))
    assert result.fallback
    assert result.reason == reason
    assert len(result.questions) == 2


@pytest.mark.asyncio
async def test_provider_error_falls_back_after_one_call(db, monkeypatch, with_credentials):
    fake = AsyncMock(side_effect=TimeoutError("slow"))
    monkeypatch.setattr(llm_client, "complete", fake)
    result = await generate_questions(GenerationRequest(count=3))
    assert fake.await_count == 1
    assert result.fallback
    assert result.reason == "provider_error"
    assert len(result.questions) == 3


@pytest.mark.asyncio
async def test_every_outcome_is_audited(db, monkeypatch, with_credentials):
    monkeypatch.setattr(llm_client, "complete", AsyncMock(side_effect=RuntimeError("boom")))
    await generate_questions(GenerationRequest(count=1), principal_id="u9")
    entry = await db[AUDIT_COLLECTION].find_one({"action": "ai_questions_generated"})
    assert entry["principal_id"] == "u9"
    assert entry["details"]["fallback"] is True
    assert entry["details"]["reason"] == "provider_error"


@pytest.mark.asyncio
async def test_audit_failure_does_not_abort(monkeypatch):
    def broken_db():
        raise RuntimeError("database down")

    monkeypatch.setattr("portal.repositories.audit.get_db", broken_db)
    result = await generate_questions(GenerationRequest(count=2))
    assert len(result.questions) == 2


def test_prompt_is_capped():
    req = GenerationRequest(count=5, resume_text="x" * 50000)
    prompt = build_prompt(req, max_chars=1000)
    assert len(prompt) <= 1000
    assert "STRICT JSON" in prompt


def test_parse_questions_accepts_wrapped_object():
    assert parse_questions(json.dumps({"questions": [{"question": "q"}]})) == [{"question": "q"}]
    with pytest.raises(ValueError):
        parse_questions('{"foo": 1}')


def test_true_false_answers_are_normalised():
    req = GenerationRequest(type="true_false")
    q = ai_generation.normalize_question({"question": "Sky is blue?", "correct_answer": "True"}, req)
    assert q["correct_answer"] == "true"
    assert q["options"] == ["true", "false"]
    assert ai_generation.normalize_question({"question": "Sky?", "correct_answer": "maybe"}, req) is None


@pytest.mark.asyncio
@pytest.mark.parametrize("reply", [
    json.dumps([{"question": "Q1", "options": 5, "correct_answer": "A"}]),
    json.dumps([{"question": "Q1", "options": "A,B,C", "correct_answer": "A"}]),
    json.dumps([7, "text", None, {"question": ["not", "text"]}]),
])
async def test_malformed_items_fall_back_instead_of_failing(db, monkeypatch, with_credentials, reply):
    monkeypatch.setattr(llm_client, "complete", AsyncMock(return_value=reply))
    result = await generate_questions(GenerationRequest(count=3))
    assert result.fallback
    assert result.reason == "empty_result"
    assert len(result.questions) == 3


@pytest.mark.asyncio
async def test_one_bad_item_does_not_sink_the_rest(db, monkeypatch, with_credentials):
    items = _provider_items(1) + [{"question": "Broken", "options": 5, "correct_answer": "A"}]
    monkeypatch.setattr(llm_client, "complete", AsyncMock(return_value=json.dumps(items)))
    result = await generate_questions(GenerationRequest(count=2))
    assert not result.fallback
    assert result.metadata["received"] == 1
    assert [q["placeholder"] for q in result.questions] == [False, True]
