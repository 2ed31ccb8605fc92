from __future__ import annotations

import datetime as dt
import logging
import typing as t

from pymongo import DESCENDING, ASCENDING

from quiz_ai.models import Question, Quiz, Student, new_id
from quiz_ai.scoring import summarize_responses

JsonDict = dict[str, t.Any]

logger = logging.getLogger(__name__)


def _now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def _iso(value: t.Any) -> str | None:
    if isinstance(value, dt.datetime):
        return value.isoformat()
    return None if value is None else str(value)


def _student_from_doc(doc: JsonDict) -> Student:
    return Student(
        id=str(doc["_id"]),
        name=doc.get("name", ""),
        email=doc.get("email"),
        google_id=doc.get("googleId"),
        profile_picture=doc.get("profilePicture"),
        created_at=_iso(doc.get("createdAt")) or "",
    )


def _quiz_from_doc(doc: JsonDict) -> Quiz:
    return Quiz(
        id=str(doc["_id"]),
        title=doc.get("title", ""),
        description=doc.get("description") or "",
        questions=[Question.from_dict(q) for q in doc.get("questions", [])],
    )


class QuizStore:
    """Quiz, student and response persistence on top of a pymongo database.

    Questions and their options are embedded in the quiz document in order,
    so a quiz and its questions are always written and removed together.
    """

    def __init__(self, db: t.Any) -> None:
        self.db = db

    # students

    def create_student(
        self,
        name: str,
        email: str | None = None,
        google_id: str | None = None,
        profile_picture: str | None = None,
    ) -> Student:
        doc = {
            "_id": new_id(),
            "name": name,
            "email": email or None,
            "googleId": google_id or None,
            "profilePicture": profile_picture or None,
            "createdAt": _now(),
        }
        self.db.students.insert_one(doc)
        return _student_from_doc(doc)

    def get_student_by_id(self, student_id: str) -> Student | None:
        doc = self.db.students.find_one({"_id": student_id})
        return _student_from_doc(doc) if doc else None

    def get_students_by_ids(self, student_ids: t.Sequence[str]) -> list[Student]:
        if not student_ids:
            return []
        return [_student_from_doc(d) for d in self.db.students.find({"_id": {"$in": list(student_ids)}})]

    def find_student_by_email(self, email: str) -> Student | None:
        doc = self.db.students.find_one({"email": email})
        return _student_from_doc(doc) if doc else None

    def find_student_by_google_id(self, google_id: str) -> Student | None:
        doc = self.db.students.find_one({"googleId": google_id})
        return _student_from_doc(doc) if doc else None

    # quizzes

    def save_quiz(self, quiz: Quiz) -> str:
        self.db.quizzes.insert_one(
            {
                "_id": quiz.id,
                "title": quiz.title,
                "description": quiz.description or None,
                "questions": [q.to_dict() for q in quiz.questions],
                "createdAt": _now(),
            }
        )
        return quiz.id

    def update_quiz_metadata(self, quiz_id: str, title: str, description: str | None = None) -> bool:
        result = self.db.quizzes.update_one(
            {"_id": quiz_id},
            {"$set": {"title": title, "description": description or None}},
        )
        return result.matched_count > 0

    def get_quizzes(self) -> list[JsonDict]:
        docs = self.db.quizzes.find(
            {},
            {"title": 1, "description": 1, "createdAt": 1, "questions.id": 1},
        ).sort("createdAt", DESCENDING)
        return [
            {
                "id": str(doc["_id"]),
                "title": doc.get("title", "Untitled Quiz"),
                "description": doc.get("description") or "",
                "createdAt": _iso(doc.get("createdAt")),
                "questionCount": len(doc.get("questions", [])),
            }
            for doc in docs
            if "_id" in doc
        ]

    def get_quiz(self, quiz_id: str) -> Quiz | None:
        doc = self.db.quizzes.find_one({"_id": quiz_id})
        return _quiz_from_doc(doc) if doc else None

    def delete_quiz(self, quiz_id: str) -> bool:
        self.db.responses.delete_many({"quizId": quiz_id})
        result = self.db.quizzes.delete_one({"_id": quiz_id})
        logger.info("Deleted quiz %s (found=%s)", quiz_id, result.deleted_count > 0)
        return result.deleted_count > 0

    # questions

    def add_question(self, quiz_id: str, question: Question) -> bool:
        result = self.db.quizzes.update_one(
            {"_id": quiz_id},
            {"$push": {"questions": question.to_dict()}},
        )
        return result.matched_count > 0

    def update_question(self, quiz_id: str, question: Question) -> bool:
        result = self.db.quizzes.update_one(
            {"_id": quiz_id, "questions.id": question.id},
            {"$set": {"questions.$": question.to_dict()}},
        )
        return result.matched_count > 0

    def remove_question(self, quiz_id: str, question_id: str) -> bool:
        result = self.db.quizzes.update_one(
            {"_id": quiz_id},
            {"$pull": {"questions": {"id": question_id}}},
        )
        return result.modified_count > 0

    # responses

    def save_response(
        self,
        *,
        student_id: str,
        quiz_id: str,
        question_id: str,
        is_correct: bool,
        selected_option_id: str | None = None,
        text_answer: str | None = None,
    ) -> str:
        response_id = new_id()
        self.db.responses.insert_one(
            {
                "_id": response_id,
                "studentId": student_id,
                "quizId": quiz_id,
                "questionId": question_id,
                "selectedOptionId": selected_option_id or None,
                "textAnswer": text_answer or None,
                "isCorrect": bool(is_correct),
                "createdAt": _now(),
            }
        )
        return response_id

    def get_quiz_responses(self, quiz_id: str | None = None) -> list[JsonDict]:
        query = {"quizId": quiz_id} if quiz_id else {}
        rows = [
            {**doc, "createdAt": _iso(doc.get("createdAt"))}
            for doc in self.db.responses.find(query).sort("createdAt", DESCENDING)
        ]
        return summarize_responses(rows)

    def has_student_completed_quiz(self, student_id: str, quiz_id: str) -> bool:
        return self.db.responses.count_documents({"studentId": student_id, "quizId": quiz_id}, limit=1) > 0

    def get_student_quiz_completion(self, student_id: str) -> list[str]:
        return list(self.db.responses.distinct("quizId", {"studentId": student_id}))

    def _result_rows(self, query: JsonDict) -> tuple[list[JsonDict], dict[str, Quiz]]:
        responses = list(self.db.responses.find(query).sort("createdAt", ASCENDING))
        quizzes: dict[str, Quiz] = {}
        for quiz_id in {r.get("quizId") for r in responses}:
            quiz = self.get_quiz(quiz_id)
            if quiz:
                quizzes[quiz_id] = quiz

        rows = []
        for r in responses:
            quiz = quizzes.get(r.get("quizId"))
            question = quiz.question_by_id(r.get("questionId")) if quiz else None
            selected = question.option_by_id(r.get("selectedOptionId") or "") if question else None
            correct = question.correct_option if question else None
            rows.append(
                {
                    "question_text": question.text if question else "",
                    "student_answer": r.get("textAnswer") or (selected.text if selected else None),
                    "correct_answer": correct.text if correct else None,
                    "is_correct": bool(r.get("isCorrect")),
                    "timestamp": _iso(r.get("createdAt")),
                }
            )
        return rows, quizzes

    def get_student_results(self, student_id: str) -> list[JsonDict]:
        rows, _ = self._result_rows({"studentId": student_id})
        return rows

    def get_student_quiz_results(self, student_id: str, quiz_id: str) -> JsonDict:
        rows, quizzes = self._result_rows({"studentId": student_id, "quizId": quiz_id})
        quiz = quizzes.get(quiz_id)
        return {
            "quiz": {"title": quiz.title, "description": quiz.description} if quiz and rows else None,
            "results": rows,
        }
