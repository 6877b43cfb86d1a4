# portal/services/shaping.py
"""Role-dependent views of stored documents."""
from typing import Any, Dict, Iterable, List, Mapping, Optional

from portal.policy.access import Principal
from portal.policy.roles import Role
from portal.repositories.base import _to_id

# never shown to candidates
ANSWER_FIELDS = ("correct_answer", "explanation", "previous_versions", "usage_count", "correct_count", "average_score")


def _is_candidate(principal: Principal) -> bool:
    return principal.role == Role.CANDIDATE


def shape_question(doc: Mapping[str, Any], principal: Principal) -> Dict[str, Any]:
    out = _to_id(doc)
    if not _is_candidate(principal):
        return out
    for f in ANSWER_FIELDS:
        out.pop(f, None)
    out["options"] = [
        {"text": o.get("text")} if isinstance(o, dict) else o for o in (out.get("options") or [])
    ]
    out["test_cases"] = [
        {k: v for k, v in tc.items() if k != "expected_output"}
        for tc in (out.get("test_cases") or []) if isinstance(tc, dict) and not tc.get("is_hidden")
    ]
    return out


def shape_questions(docs: Iterable[Mapping[str, Any]], principal: Principal) -> List[Dict[str, Any]]:
    return [shape_question(d, principal) for d in docs]


def shape_test(doc: Mapping[str, Any], principal: Principal,
               questions: Optional[Iterable[Mapping[str, Any]]] = None) -> Dict[str, Any]:
    out = _to_id(doc)
    if questions is not None:
        # keep the test's question order
        by_id = {str(q["_id"]): q for q in questions}
        out["question_details"] = [
            shape_question(by_id[qid], principal) for qid in out.get("questions", []) if qid in by_id
        ]
    return out


def shape_attempt(doc: Mapping[str, Any], principal: Principal, show_results: bool = True) -> Dict[str, Any]:
    out = _to_id(doc)
    if _is_candidate(principal) and not show_results:
        out.pop("result", None)
        out.pop("passed", None)
    return out
