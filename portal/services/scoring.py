# portal/services/scoring.py
"""
Deterministic test scoring.

For each question its points (default 1 when missing) go into total_points.
The submitted answer is looked up by question id; when a submission holds
several answers for the same question the first one wins. An answer counts
only when it equals the recorded correct answer exactly (case-sensitive
strings, element-wise lists). Unanswered questions earn nothing.
"""
import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

DEFAULT_POINTS = 1


@dataclass(frozen=True)
class ScoreResult:
    correct_count: int
    total_questions: int
    earned_points: float
    total_points: float
    percentage: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _question_id(question: Mapping[str, Any]) -> Optional[str]:
    qid = question.get("_id", question.get("id"))
    return str(qid) if qid is not None else None


def _answer_question_id(answer: Mapping[str, Any]) -> Optional[str]:
    qid = answer.get("question_id", answer.get("questionId"))
    return str(qid) if qid is not None else None


def _points(question: Mapping[str, Any]):
    points = question.get("points")
    return DEFAULT_POINTS if points is None else points


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _first_answers(answers: Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for a in answers or []:
        qid = _answer_question_id(a)
        if qid is not None and qid not in out:
            out[qid] = a.get("answer")
    return out


def is_correct(answer: Any, correct_answer: Any) -> bool:
    if answer is None or correct_answer is None:
        return False
    if isinstance(correct_answer, (list, tuple)):
        return isinstance(answer, (list, tuple)) and list(answer) == list(correct_answer)
    return type(answer) is type(correct_answer) and answer == correct_answer


def score(answers: Sequence[Mapping[str, Any]], questions: Sequence[Mapping[str, Any]]) -> ScoreResult:
    submitted = _first_answers(answers)
    correct_count = 0
    total_points = 0
    earned_points = 0
    for q in questions or []:
        points = _points(q)
        total_points += points
        qid = _question_id(q)
        if qid is None or qid not in submitted:
            continue
        if is_correct(submitted[qid], q.get("correct_answer", q.get("correctAnswer"))):
            correct_count += 1
            earned_points += points
    percentage = _round_half_up(earned_points / total_points * 100) if total_points > 0 else 0
    return ScoreResult(
        correct_count=correct_count,
        total_questions=len(questions or []),
        earned_points=earned_points,
        total_points=total_points,
        percentage=percentage,
    )


def correct_question_ids(answers: Sequence[Mapping[str, Any]], questions: Sequence[Mapping[str, Any]]) -> List[str]:
    submitted = _first_answers(answers)
    out = []
    for q in questions or []:
        qid = _question_id(q)
        if qid in submitted and is_correct(submitted[qid], q.get("correct_answer", q.get("correctAnswer"))):
            out.append(qid)
    return out
