import logging
import os
from typing import Any, Dict, List, Optional, Tuple

from flask import Flask, jsonify, request
from pymongo.errors import PyMongoError

from backend.mongo import connect
from backend.quiz_store import QuizStore
from quiz_ai import latex_text
from quiz_ai.extraction import ImageUpload, InputMode, QuizExtractor
from quiz_ai.models import Question, Quiz, create_empty_question, new_id, validate_question
from quiz_ai.providers import ProviderName
from quiz_ai.scoring import average_score, calculate_results, grade_answer
from set_env_vars import initialize_env_vars

logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(name)s | %(message)s")
logger = logging.getLogger(__name__)

initialize_env_vars()

server = Flask(__name__, static_folder="frontend/dist", static_url_path="")

try:
    store: Optional[QuizStore] = QuizStore(connect())
except (RuntimeError, PyMongoError) as e:
    logger.error("Database unavailable: %s", e)
    store = None


def _db_unavailable():
    return jsonify({"error": "Database not initialized"}), 503


def _parse_question(data: Any) -> Tuple[Optional[Question], Optional[str]]:
    if not isinstance(data, dict):
        return None, "No question provided"
    try:
        question = Question.from_dict(data)
    except ValueError as e:
        return None, str(e)
    problem = validate_question(question)
    if problem:
        return None, problem
    return question, None


def _extractor_from(payload: Dict[str, Any]) -> Tuple[Optional[QuizExtractor], Optional[str]]:
    provider = payload.get("provider") or ProviderName.OPENAI.value
    try:
        return QuizExtractor(provider, payload.get("apiKey")), None
    except ValueError as e:
        return None, str(e)


@server.route("/api/hello")
def hello():
    return jsonify({"message": "API Working!"})

@server.route("/api/providers", methods=["GET"])
def get_providers():
    return jsonify({
        "providers": [{"name": p.value, "displayName": p.display_name} for p in ProviderName],
        "inputModes": [m.value for m in InputMode],
    })

@server.route("/api/registerStudent", methods=["POST"])
def register_student():
    if store is None:
        return _db_unavailable()

    payload = request.get_json(silent=True) or {}
    google_id = payload.get("googleId")
    email = payload.get("email")

    existing = None
    if google_id:
        existing = store.find_student_by_google_id(google_id)
    if existing is None and email:
        existing = store.find_student_by_email(email)
    if existing is not None:
        return jsonify(existing.to_dict())

    name = (payload.get("name") or "").strip()
    if not name:
        return jsonify({"error": "Name is required"}), 400

    student = store.create_student(
        name=name,
        email=email,
        google_id=google_id,
        profile_picture=payload.get("profilePicture"),
    )
    logger.info("Registered student %s", student.id)
    return jsonify(student.to_dict())

@server.route("/api/getStudent/<studentID>", methods=["GET"])
def get_student(studentID):
    if store is None:
        return _db_unavailable()

    student = store.get_student_by_id(studentID)
    if not student:
        return jsonify({"error": "Student not found"}), 404
    return jsonify(student.to_dict())

@server.route("/api/getQuizzes", methods=["GET"])
def get_quizzes():
    if store is None:
        return _db_unavailable()
    return jsonify(store.get_quizzes())

@server.route("/api/createQuiz", methods=["POST"])
def create_quiz():
    if store is None:
        return _db_unavailable()

    payload = request.get_json(silent=True) or {}
    title = (payload.get("title") or "").strip()
    if not title:
        return jsonify({"error": "Quiz title is required"}), 400

    questions: List[Question] = []
    for i, raw in enumerate(payload.get("questions") or []):
        question, problem = _parse_question(raw)
        if problem:
            return jsonify({"error": f"Question {i + 1}: {problem}"}), 400
        questions.append(question)

    quiz = Quiz(
        id=new_id(),
        title=title,
        description=payload.get("description") or "",
        questions=questions,
    )
    store.save_quiz(quiz)

    return jsonify({"quizID": quiz.id})

@server.route("/api/getQuiz/<quizID>", methods=["GET"])
def get_quiz(quizID):
    if store is None:
        return _db_unavailable()

    quiz = store.get_quiz(quizID)
    if not quiz:
        return jsonify({"error": "Quiz not found"}), 404
    return jsonify(quiz.to_dict())

@server.route("/api/updateQuizMetadata/<quizID>", methods=["POST"])
def update_quiz_metadata(quizID):
    if store is None:
        return _db_unavailable()

    payload = request.get_json(silent=True) or {}
    title = (payload.get("title") or "").strip()
    if not title:
        return jsonify({"error": "Quiz title is required"}), 400

    if not store.update_quiz_metadata(quizID, title, payload.get("description")):
        return jsonify({"error": "Quiz not found"}), 404
    return jsonify({"status": "Quiz updated"})

@server.route("/api/deleteQuiz/<quizID>", methods=["DELETE", "POST"])
def delete_quiz(quizID):
    if store is None:
        return _db_unavailable()

    try:
        deleted = store.delete_quiz(quizID)
    except PyMongoError as e:
        logger.error("Error deleting quiz %s: %s", quizID, e)
        return jsonify({"error": "Failed to delete quiz"}), 500
    if not deleted:
        return jsonify({"error": "Quiz not found"}), 404
    return jsonify({"status": "Quiz deleted"})

@server.route("/api/newQuestion", methods=["GET"])
def new_question():
    return jsonify(create_empty_question().to_dict())

@server.route("/api/addQuestion/<quizID>", methods=["POST"])
def add_question(quizID):
    if store is None:
        return _db_unavailable()

    payload = request.get_json(silent=True) or {}
    question, problem = _parse_question(payload.get("question", payload))
    if problem:
        return jsonify({"error": problem}), 400

    if not store.add_question(quizID, question):
        return jsonify({"error": "Quiz not found"}), 404
    return jsonify({"questionID": question.id})

@server.route("/api/updateQuestion/<quizID>/<questionID>", methods=["POST"])
def update_question(quizID, questionID):
    if store is None:
        return _db_unavailable()

    payload = request.get_json(silent=True) or {}
    raw = payload.get("question", payload)
    if not isinstance(raw, dict):
        return jsonify({"error": "No question provided"}), 400
    raw = {**raw, "id": questionID}
    question, problem = _parse_question(raw)
    if problem:
        return jsonify({"error": problem}), 400

    if not store.update_question(quizID, question):
        return jsonify({"error": "Question not found"}), 404
    return jsonify({"status": "Question updated"})

@server.route("/api/removeQuestion/<quizID>/<questionID>", methods=["DELETE"])
def remove_question(quizID, questionID):
    if store is None:
        return _db_unavailable()

    if not store.remove_question(quizID, questionID):
        return jsonify({"error": "Question not found"}), 404
    return jsonify({"status": "Question removed"})

@server.route("/api/submitQuiz/<quizID>", methods=["POST"])
def submit_quiz(quizID):
    if store is None:
        return _db_unavailable()

    payload = request.get_json(silent=True) or {}
    student_id = payload.get("studentId")
    if not student_id:
        return jsonify({"error": "No student provided"}), 400

    quiz = store.get_quiz(quizID)
    if not quiz:
        return jsonify({"error": "Quiz not found"}), 404
    if store.has_student_completed_quiz(student_id, quizID):
        return jsonify({"error": "Quiz already completed"}), 409

    responses = payload.get("responses") or []
    if not isinstance(responses, list) or not all(isinstance(r, dict) for r in responses):
        return jsonify({"error": "Responses must be a list of objects"}), 400

    graded = []
    for r in responses:
        question = quiz.question_by_id(str(r.get("questionId") or ""))
        if question is None:
            return jsonify({"error": f"Unknown question {r.get('questionId')!r}"}), 400
        selected = r.get("selectedOptionId") or ""
        text_answer = r.get("textAnswer") or ""
        graded.append((question, selected, text_answer, grade_answer(question, selected, text_answer)))

    answers: Dict[str, str] = {}
    for question, selected, text_answer, is_correct in graded:
        store.save_response(
            student_id=student_id,
            quiz_id=quizID,
            question_id=question.id,
            selected_option_id=selected,
            text_answer=text_answer,
            is_correct=is_correct,
        )
        answers[question.id] = selected

    result = calculate_results(quiz.questions, answers)
    logger.info("Student %s scored %.1f on quiz %s", student_id, result.score, quizID)
    return jsonify(result.to_dict())

@server.route("/api/quizCompleted/<studentID>/<quizID>", methods=["GET"])
def quiz_completed(studentID, quizID):
    if store is None:
        return _db_unavailable()
    return jsonify({"completed": store.has_student_completed_quiz(studentID, quizID)})

@server.route("/api/getCompletedQuizzes/<studentID>", methods=["GET"])
def get_completed_quizzes(studentID):
    if store is None:
        return _db_unavailable()
    return jsonify(store.get_student_quiz_completion(studentID))

@server.route("/api/getStudentResults/<studentID>", methods=["GET"])
def get_student_results(studentID):
    if store is None:
        return _db_unavailable()
    return jsonify(store.get_student_results(studentID))

@server.route("/api/getStudentResults/<studentID>/<quizID>", methods=["GET"])
def get_student_quiz_results(studentID, quizID):
    if store is None:
        return _db_unavailable()
    return jsonify(store.get_student_quiz_results(studentID, quizID))

@server.route("/api/getQuizResponses", methods=["GET"])
def get_quiz_responses():
    if store is None:
        return _db_unavailable()

    quiz_id = request.args.get("quizID")
    responses = store.get_quiz_responses(quiz_id)

    student_ids = sorted({r["userId"] for r in responses if r.get("userId")})
    students = {s.id: {"id": s.id, "name": s.name} for s in store.get_students_by_ids(student_ids)}

    by_quiz: Dict[str, List[Dict[str, Any]]] = {}
    for r in responses:
        by_quiz.setdefault(r["quizId"], []).append(r)

    return jsonify({
        "responses": responses,
        "students": students,
        "averages": {qid: average_score(rs) for qid, rs in by_quiz.items()},
    })

@server.route("/api/extractFromImages", methods=["POST"])
def extract_from_images():
    extractor, problem = _extractor_from(request.form)
    if problem:
        return jsonify({"error": problem}), 400

    images = [
        ImageUpload(filename=f.filename, data=f.read(), mime_type=f.mimetype or "image/png")
        for f in request.files.getlist("images")
        if f and f.filename
    ]

    result = extractor.process_images(images)
    if result.error:
        return jsonify(result.to_dict()), 422
    return jsonify(result.to_dict())

@server.route("/api/extractFromImage", methods=["POST"])
def extract_from_image():
    payload = request.get_json(silent=True) or {}
    extractor, problem = _extractor_from(payload)
    if problem:
        return jsonify({"error": problem}), 400

    result = extractor.process_image(payload.get("image") or "")
    if result.error:
        return jsonify(result.to_dict()), 422
    return jsonify(result.to_dict())

@server.route("/api/extractFromSpeech", methods=["POST"])
def extract_from_speech():
    payload = request.get_json(silent=True) or {}
    extractor, problem = _extractor_from(payload)
    if problem:
        return jsonify({"error": problem}), 400

    result = extractor.process_speech(payload.get("transcript") or "")
    if result.question is not None and not result.question.text.strip():
        return jsonify({"error": "Question text is required", "state": "failed"}), 422
    if result.error:
        return jsonify(result.to_dict()), 422
    return jsonify(result.to_dict())

@server.route("/api/renderText", methods=["POST"])
def render_text():
    payload = request.get_json(silent=True) or {}
    text = payload.get("text") or ""
    inline = bool(payload.get("inline", False))

    return jsonify({
        "html": latex_text.render(text, inline=inline),
        "segments": [s.to_dict() for s in latex_text.segment(text)],
        "hasLatex": latex_text.has_latex(text),
    })

@server.route("/api/insertSymbol", methods=["POST"])
def insert_symbol():
    payload = request.get_json(silent=True) or {}
    text = payload.get("text") or ""
    symbol = payload.get("symbol")
    if not symbol:
        return jsonify({"error": "No symbol provided"}), 400
    try:
        start = int(payload.get("selectionStart", len(text)))
        end = int(payload.get("selectionEnd", start))
    except (TypeError, ValueError):
        return jsonify({"error": "Invalid selection"}), 400

    new_text, cursor = latex_text.insert_at_cursor(text, start, end, symbol)
    return jsonify({"text": new_text, "cursor": cursor})

@server.route("/api/latexSymbols", methods=["GET"])
def latex_symbols():
    return jsonify([
        {"symbol": symbol, "label": label, "html": latex_text.render(symbol, inline=True)}
        for symbol, label in latex_text.COMMON_SYMBOLS
    ])


@server.route("/", defaults={"path": ""})
@server.route("/<path:path>")
def spa(path):
    if path.startswith("api"):
        return jsonify({"error": "API route not found"}), 404

    return server.send_static_file("index.html")

if __name__ == '__main__':
    server.run(port=int(os.environ.get("PORT", 8080)))
