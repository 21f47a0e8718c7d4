"""Assessment grader.

Grades lecture quizzes and the course final test. Multiple-choice and
true/false answers match by option index. Short answers match the expected
text after trimming and case folding; there is no partial credit or fuzzy
matching.

Percentages are rounded half up and compared with the passing score after
rounding.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import structlog

from src.courses.models import (
    CourseStructure,
    FinalTestQuestion,
    LectureType,
    QuestionType,
    QuizQuestion,
)
from src.gamification.models import RewardEvent

from .engine import (
    LectureResult,
    Transition,
    advance,
    can_take_final_test,
    check_indexes,
    on_lecture_or_quiz_completed,
    require_unlocked,
)
from .exceptions import (
    AttemptsExhaustedError,
    NotFoundError,
    PrerequisitesNotMetError,
    ValidationError,
)
from .models import (
    GradedAnswer,
    LectureProgress,
    ProgressRecord,
    QuestionFeedback,
    TestAttempt,
    percent,
)


logger = structlog.get_logger(__name__)


@dataclass
class Grade:
    """Graded answers of one submission."""

    answers: list[GradedAnswer]
    feedback: list[QuestionFeedback]
    earned_points: int
    total_points: int

    @property
    def percentage(self) -> int:
        return percent(self.earned_points, self.total_points)

    @property
    def correct_answers(self) -> int:
        return sum(1 for answer in self.answers if answer.is_correct)


@dataclass
class QuizSubmission:
    """Result of a lecture quiz submission."""

    score: int
    passed: bool
    attempts: int
    attempts_remaining: int
    already_passed: bool = False
    grade: Grade | None = None
    transition: Transition = field(default_factory=Transition)
    progress: ProgressRecord | None = None


@dataclass
class FinalTestSubmission:
    """Result of a final test submission."""

    attempt: TestAttempt
    passed: bool
    percentage: int
    can_retake: bool
    total_questions: int
    already_passed: bool = False
    transition: Transition = field(default_factory=Transition)
    progress: ProgressRecord | None = None
    certificate_id: str | None = None

    @property
    def correct_answers(self) -> int:
        return self.attempt.correct_answers


# ==============================================================================
# Answer Matching
# ==============================================================================


def _check_answers(answers: Sequence[Any], question_count: int) -> None:
    if len(answers) > question_count:
        msg = f"{len(answers)} respostas para {question_count} perguntas"
        raise ValidationError(msg)
    for answer in answers:
        if answer is not None and not isinstance(answer, int | str):
            msg = f"Tipo de resposta invalido: {type(answer).__name__}"
            raise ValidationError(msg)


def _index_matches(answer: Any, correct: int | str) -> bool:
    # bool is an int subclass; True must not match option 1
    if isinstance(answer, bool) or not isinstance(answer, int):
        return False
    return answer == correct


def _text_matches(answer: Any, correct: int | str) -> bool:
    if not isinstance(answer, str) or not isinstance(correct, str):
        return False
    return answer.strip().casefold() == correct.strip().casefold()


def is_correct(question: FinalTestQuestion | QuizQuestion, answer: Any) -> bool:
    question_type = getattr(question, "type", QuestionType.MULTIPLE_CHOICE)
    if question_type == QuestionType.SHORT_ANSWER:
        return _text_matches(answer, question.correct_answer)
    return _index_matches(answer, question.correct_answer)


def grade_answers(
    questions: Sequence[FinalTestQuestion | QuizQuestion], answers: Sequence[Any]
) -> Grade:
    """Grade answers positionally. Missing answers count as wrong.

    Raises:
        ValidationError: If there are more answers than questions or an
            answer has an unsupported type
    """
    _check_answers(answers, len(questions))

    graded: list[GradedAnswer] = []
    feedback: list[QuestionFeedback] = []
    earned = 0
    total = 0
    for index, question in enumerate(questions):
        answer = answers[index] if index < len(answers) else None
        correct = is_correct(question, answer)
        points = question.points if correct else 0
        earned += points
        total += question.points
        graded.append(
            GradedAnswer(
                question_index=index,
                answer=answer,
                is_correct=correct,
                points_earned=points,
            )
        )
        explanation = getattr(question, "explanation", None)
        if explanation:
            feedback.append(
                QuestionFeedback(
                    question_index=index,
                    feedback="Correct!" if correct else "Incorrect",
                    explanation=explanation,
                )
            )

    return Grade(
        answers=graded, feedback=feedback, earned_points=earned, total_points=total
    )


def grade_quiz(questions: Sequence[QuizQuestion], answers: Sequence[Any]) -> Grade:
    """Grade a lecture quiz by option index."""
    return grade_answers(questions, answers)


# ==============================================================================
# Lecture Quiz
# ==============================================================================


def submit_quiz(
    progress: ProgressRecord,
    course: CourseStructure,
    module_index: int,
    lecture_index: int,
    answers: Sequence[Any],
    now: datetime,
    default_passing_score: int = 70,
    default_attempts: int = 3,
) -> QuizSubmission:
    """Grade a quiz lecture and complete it on a passing score.

    A quiz that is already passed returns the stored score and consumes no
    attempt.

    Raises:
        InvalidIndexError: If an index is out of range
        ValidationError: If the lecture is not a quiz or answers are malformed
        PrerequisitesNotMetError: If the module is locked
        AttemptsExhaustedError: If the lecture's attempt cap is reached
    """
    check_indexes(course, module_index, lecture_index)
    spec = course.modules[module_index].lectures[lecture_index]
    if spec.type != LectureType.QUIZ or spec.quiz is None:
        msg = "A aula informada nao e um quiz"
        raise ValidationError(msg)
    module = require_unlocked(progress, module_index)

    quiz = spec.quiz
    passing_score = (
        quiz.passing_score if quiz.passing_score is not None else default_passing_score
    )
    max_attempts = quiz.attempts or default_attempts
    lecture: LectureProgress = module.lecture(lecture_index)

    if lecture.completed:
        return QuizSubmission(
            score=lecture.score or 0,
            passed=True,
            attempts=lecture.attempts,
            attempts_remaining=max(0, max_attempts - lecture.attempts),
            already_passed=True,
        )
    if lecture.attempts >= max_attempts:
        raise AttemptsExhaustedError(
            f"Limite de {max_attempts} tentativas do quiz atingido"
        )

    grade = grade_quiz(quiz.questions, answers)
    passed = grade.percentage >= passing_score

    lecture.attempts += 1
    lecture.submitted_at = now
    transition = on_lecture_or_quiz_completed(
        progress,
        course,
        module_index,
        lecture_index,
        LectureResult(completed=passed, score=grade.percentage),
        now,
        quiz=True,
    )

    logger.info(
        "quiz_graded",
        learner_id=str(progress.learner_id),
        course_id=str(progress.course_id),
        module_index=module_index,
        lecture_index=lecture_index,
        percentage=grade.percentage,
        passed=passed,
        attempt=lecture.attempts,
    )

    return QuizSubmission(
        score=grade.percentage,
        passed=passed,
        attempts=lecture.attempts,
        attempts_remaining=max(0, max_attempts - lecture.attempts),
        grade=grade,
        transition=transition,
    )


# ==============================================================================
# Final Test
# ==============================================================================


def grade_final_test(
    progress: ProgressRecord,
    course: CourseStructure,
    answers: Sequence[Any],
    time_spent: int | None,
    now: datetime,
) -> FinalTestSubmission:
    """Grade a final test submission and record the attempt.

    Every attempt is appended, failed ones included. Once passed, further
    submissions return the passing attempt and append nothing.

    Raises:
        NotFoundError: If the course has no enabled final test
        PrerequisitesNotMetError: If some module is not completed
        AttemptsExhaustedError: If the attempt limit is reached
        ValidationError: If answers are malformed
    """
    final_test = course.final_test
    if final_test is None or not final_test.is_enabled:
        msg = "Prova final nao disponivel"
        raise NotFoundError(msg)

    passing_attempt = progress.passing_attempt
    if progress.final_test_passed and passing_attempt is not None:
        return FinalTestSubmission(
            attempt=passing_attempt,
            passed=True,
            percentage=passing_attempt.percentage,
            can_retake=False,
            total_questions=len(final_test.questions),
            already_passed=True,
        )

    if not can_take_final_test(progress, course):
        msg = "Conclua todos os modulos antes da prova final"
        raise PrerequisitesNotMetError(msg)

    attempt_count = len(progress.final_test_attempts)
    if attempt_count >= final_test.attempts:
        raise AttemptsExhaustedError(
            f"Limite de {final_test.attempts} tentativas da prova final atingido"
        )
    if time_spent is not None and time_spent < 0:
        msg = "time_spent nao pode ser negativo"
        raise ValidationError(msg)

    grade = grade_answers(final_test.questions, answers)
    percentage = grade.percentage
    passed = percentage >= final_test.passing_score

    attempt = TestAttempt(
        attempt_number=attempt_count + 1,
        answers=grade.answers,
        feedback=grade.feedback,
        score=grade.earned_points,
        percentage=percentage,
        passed=passed,
        time_spent=time_spent,
        completed_at=now,
    )
    progress.final_test_attempts.append(attempt)
    progress.last_accessed_at = now
    if time_spent:
        progress.total_time_spent += time_spent

    transition = Transition()
    if passed:
        progress.final_test_passed = True
        progress.final_test_score = percentage
        progress.final_test_completed_at = now
        transition.events.append(
            RewardEvent.final_test_passed(progress.learner_id, progress.course_id)
        )
        transition.merge(advance(progress, course, now))

    logger.info(
        "final_test_graded",
        learner_id=str(progress.learner_id),
        course_id=str(progress.course_id),
        attempt=attempt.attempt_number,
        percentage=percentage,
        passed=passed,
    )

    return FinalTestSubmission(
        attempt=attempt,
        passed=passed,
        percentage=percentage,
        can_retake=not passed and attempt.attempt_number < final_test.attempts,
        total_questions=len(final_test.questions),
        transition=transition,
    )
