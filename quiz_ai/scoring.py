from __future__ import annotations

import typing as t

from quiz_ai.models import Question, QuestionResult, QuizResult

JsonDict = dict[str, t.Any]


def grade_answer(question: Question, selected_option_id: str | None, text_answer: str | None = None) -> bool:
    # subjective answers are stored ungraded
    if not question.type.has_options:
        return False
    return bool(selected_option_id) and selected_option_id == question.correct_answer_id


def calculate_results(questions: t.Sequence[Question], answers: t.Mapping[str, str]) -> QuizResult:
    question_results = []
    for q in questions:
        user_answer_id = answers.get(q.id) or ""
        question_results.append(
            QuestionResult(
                question_id=q.id,
                is_correct=grade_answer(q, user_answer_id),
                user_answer_id=user_answer_id,
                correct_answer_id=q.correct_answer_id,
            )
        )

    correct = sum(1 for r in question_results if r.is_correct)
    total = len(questions)
    return QuizResult(
        total_questions=total,
        correct_answers=correct,
        score=(correct / total) * 100 if total else 0.0,
        question_results=question_results,
    )


def summarize_responses(rows: t.Iterable[JsonDict]) -> list[JsonDict]:
    """Group stored responses into one summary per (quiz, student).

    Rows are expected newest first, so each summary carries the timestamp of
    the student's latest response.
    """
    grouped: dict[tuple[str, str], JsonDict] = {}
    for row in rows:
        key = (str(row.get("quizId")), str(row.get("studentId")))
        entry = grouped.get(key)
        if entry is None:
            entry = {
                "quizId": row.get("quizId"),
                "userId": row.get("studentId"),
                "timestamp": row.get("createdAt"),
                "answers": {},
                "correct": 0,
                "total": 0,
            }
            grouped[key] = entry
        entry["answers"][row.get("questionId")] = row.get("selectedOptionId")
        entry["total"] += 1
        if row.get("isCorrect"):
            entry["correct"] += 1

    return [
        {
            "quizId": e["quizId"],
            "userId": e["userId"],
            "timestamp": e["timestamp"],
            "answers": e["answers"],
            # half-up, not banker's rounding
            "score": int(e["correct"] * 100 / e["total"] + 0.5) if e["total"] else 0,
        }
        for e in grouped.values()
    ]


def average_score(summaries: t.Sequence[JsonDict]) -> float:
    if not summaries:
        return 0.0
    return sum(s.get("score", 0) for s in summaries) / len(summaries)
