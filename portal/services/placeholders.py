# portal/services/placeholders.py
"""Deterministic stand-in questions used whenever the AI provider is unavailable."""
from typing import Any, Dict, List

_TRUE_FALSE = ("true", "false")


def placeholder_question(index: int, subject: str, difficulty: str, qtype: str) -> Dict[str, Any]:
    n = index + 1
    base = {
        "question": f"Sample {difficulty} {subject} question {n}",
        "type": qtype,
        "difficulty": difficulty,
        "points": 1,
        "explanation": "Placeholder question; replace with reviewed content.",
        "placeholder": True,
    }
    if qtype == "multiple_choice":
        base["options"] = [f"Option {letter}" for letter in "ABCD"]
        base["correct_answer"] = "Option A"
    elif qtype == "true_false":
        base["options"] = list(_TRUE_FALSE)
        base["correct_answer"] = _TRUE_FALSE[index % 2]
    else:
        base["options"] = []
        base["correct_answer"] = None
    return base


def placeholder_questions(count: int, subject: str, difficulty: str, qtype: str, start: int = 0) -> List[Dict[str, Any]]:
    return [placeholder_question(start + i, subject, difficulty, qtype) for i in range(max(0, count))]
