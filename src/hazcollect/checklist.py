"""Checklist session engine: conditional flattening, navigation and completion.

A checklist is a tree: each question may own conditional sub-questions that
only apply when the parent was answered yes (``IF YES``) or no (``IF NO``).
The session turns that tree plus the current answers into a flat, ordered
list of visible questions and recomputes it after every answer change.
"""
import logging
import math
from datetime import date
from enum import Enum
from typing import Any

from hazcollect.checklists import iter_questions
from hazcollect.models import (
    Branch, Checklist, ChecklistAnswer, ChecklistQuestion, FlatQuestion, QuestionType,
)

logger = logging.getLogger(__name__)

YES_VALUES = {"yes", "true"}
NO_VALUES = {"no", "false"}

REQUIRED_MESSAGE = "Please answer this question before continuing."


class SessionState(str, Enum):
    ANSWERING = "answering"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class SessionClosedError(RuntimeError):
    """Raised when a completed or cancelled session is modified."""


def normalize_branch_value(value: Any) -> str | None:
    """Reduce an answer to the lowercase string compared against branch triggers."""
    if isinstance(value, (list, tuple)):
        if not value:
            return None
        value = value[0]
    if value is None:
        return None
    return str(value).lower()


def branch_matches(branch: Branch, normalized: str | None) -> bool:
    if branch == Branch.IF_YES:
        return normalized in YES_VALUES
    if branch == Branch.IF_NO:
        return normalized in NO_VALUES
    return False


def flatten_questions(
    questions: list[ChecklistQuestion],
    answers: dict[str, ChecklistAnswer],
) -> list[FlatQuestion]:
    """Return the visible questions in depth-first order for the given answers."""
    flat: list[FlatQuestion] = []

    def visit(question, depth, parent_answer=None, branch=None):
        flat.append(FlatQuestion(question=question, depth=depth, parent_answer=parent_answer, branch=branch))
        answer = answers.get(question.id)
        if answer is None or not question.conditional_questions:
            return
        normalized = normalize_branch_value(answer.value)
        for cond in question.conditional_questions:
            if branch_matches(cond.branch, normalized):
                visit(cond.question, depth + 1, normalized, cond.branch)

    for question in questions:
        visit(question, 0)
    return flat


def has_value(answer: ChecklistAnswer | None) -> bool:
    return answer is not None and answer.value is not None


def is_answer_valid(question: ChecklistQuestion, answer: ChecklistAnswer | None) -> bool:
    if not question.required:
        return True
    if not has_value(answer):
        return False
    if isinstance(answer.value, (list, tuple)):
        return len(answer.value) > 0
    if isinstance(answer.value, str):
        return len(answer.value.strip()) > 0
    return True


def parse_number(text: Any) -> int | float | None:
    """Parse numeric input; anything non-numeric becomes None."""
    if isinstance(text, bool):
        return None
    if isinstance(text, (int, float)):
        return text if math.isfinite(text) else None
    if text is None:
        return None
    text = str(text).strip()
    # int() and float() accept digit separators like "1_000"; typed input should not.
    if "_" in text:
        return None
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def toggle_choice(current: Any, choice_id: str) -> list[str]:
    """Add choice_id to a multiple-choice selection, or remove it if present."""
    if current is None:
        selected = []
    elif isinstance(current, (list, tuple)):
        selected = list(current)
    else:
        selected = [current]
    if choice_id in selected:
        return [c for c in selected if c != choice_id]
    return selected + [choice_id]


class ChecklistSession:
    """One technician's pass through a checklist.

    Answers live only in memory; whoever drives the session stores the
    result of ``complete()``.
    """

    def __init__(self, checklist: Checklist):
        self.checklist = checklist
        self.state = SessionState.ANSWERING
        self.cursor = 0
        self._answers: dict[str, ChecklistAnswer] = {}
        self._questions = {q.id: q for q in iter_questions(checklist.questions)}
        self.flat_questions = flatten_questions(checklist.questions, self._answers)

    @property
    def answers(self) -> dict[str, ChecklistAnswer]:
        return dict(self._answers)

    def get_answer(self, question_id: str) -> ChecklistAnswer | None:
        return self._answers.get(question_id)

    def current_flat(self) -> FlatQuestion | None:
        if not self.flat_questions:
            return None
        return self.flat_questions[self.cursor]

    def current_question(self) -> ChecklistQuestion | None:
        flat = self.current_flat()
        return flat.question if flat else None

    def is_last(self) -> bool:
        return self.cursor >= len(self.flat_questions) - 1

    def _check_open(self) -> None:
        if self.state != SessionState.ANSWERING:
            raise SessionClosedError(f"Checklist session is {self.state.value}")

    def _recompute(self) -> None:
        self.flat_questions = flatten_questions(self.checklist.questions, self._answers)
        if self.cursor >= len(self.flat_questions):
            self.cursor = max(0, len(self.flat_questions) - 1)

    def answer(self, question_id: str, value: Any) -> None:
        """Record (or overwrite) an answer. Number questions parse string input."""
        self._check_open()
        question = self._questions[question_id]
        if question.type == QuestionType.NUMBER:
            value = parse_number(value)
        self._answers[question_id] = ChecklistAnswer(question_id=question_id, value=value)
        self._recompute()

    def answer_number(self, question_id: str, text: Any) -> int | float | None:
        """Record typed numeric input; anything non-numeric leaves the question unanswered."""
        value = parse_number(text)
        self.answer(question_id, value)
        return value

    def clear_answer(self, question_id: str) -> None:
        self._check_open()
        if question_id not in self._questions:
            raise KeyError(question_id)
        self._answers.pop(question_id, None)
        self._recompute()

    def toggle(self, question_id: str, choice_id: str) -> list[str]:
        """Toggle one choice of a multiple-choice question. An empty selection counts as unanswered."""
        self._check_open()
        current = self._answers.get(question_id)
        selected = toggle_choice(current.value if current else None, choice_id)
        self.answer(question_id, selected or None)
        return selected

    def next(self) -> dict:
        """Advance the cursor if the current question is answered well enough."""
        self._check_open()
        question = self.current_question()
        if question is None:
            return {"advanced": False, "error": None}
        if not is_answer_valid(question, self._answers.get(question.id)):
            return {"advanced": False, "error": REQUIRED_MESSAGE}
        if self.is_last():
            return {"advanced": False, "error": None}
        self.cursor += 1
        return {"advanced": True, "error": None}

    def previous(self) -> bool:
        self._check_open()
        if self.cursor == 0:
            return False
        self.cursor -= 1
        return True

    def go_to(self, index: int) -> None:
        self._check_open()
        if not 0 <= index < len(self.flat_questions):
            raise IndexError(f"No visible question at position {index}")
        self.cursor = index

    def progress_fraction(self) -> float:
        if not self.flat_questions:
            return 0.0
        answered = sum(1 for fq in self.flat_questions if has_value(self._answers.get(fq.question.id)))
        return answered / len(self.flat_questions)

    def missing_required(self) -> list[int]:
        """Positions of visible required questions that have no answer."""
        return [
            i for i, fq in enumerate(self.flat_questions)
            if fq.question.required and not has_value(self._answers.get(fq.question.id))
        ]

    def complete(self) -> dict:
        self._check_open()
        missing = self.missing_required()
        if missing:
            self.cursor = missing[0]
            return {
                "completed": False,
                "missing_count": len(missing),
                "first_missing_index": missing[0],
            }
        answers = [
            self._answers[fq.question.id]
            for fq in self.flat_questions
            if has_value(self._answers.get(fq.question.id))
        ]
        self.state = SessionState.COMPLETED
        logger.info("Checklist %s completed with %d answers", self.checklist.id, len(answers))
        return {"completed": True, "answers": answers}

    def cancel(self) -> None:
        self._check_open()
        self._answers.clear()
        self._recompute()
        self.state = SessionState.CANCELLED

    def fill_date_defaults(self, today: date | None = None) -> None:
        """Default unanswered Date questions up to the cursor to today's date."""
        self._check_open()
        iso = (today or date.today()).isoformat()
        for fq in self.flat_questions[: self.cursor + 1]:
            if fq.question.type == QuestionType.DATE and fq.question.id not in self._answers:
                self._answers[fq.question.id] = ChecklistAnswer(question_id=fq.question.id, value=iso)
        self._recompute()
