# tests/test_checklist.py
from datetime import date

import pytest

from hazcollect.checklist import (
    ChecklistSession, SessionClosedError, SessionState, flatten_questions, is_answer_valid,
    normalize_branch_value, parse_number, toggle_choice,
)
from hazcollect.checklists import checklist_from_dict, load_sample_checklist
from hazcollect.models import Branch, ChecklistAnswer, ChecklistQuestion, QuestionType


def _answers(**values):
    return {qid: ChecklistAnswer(question_id=qid, value=v) for qid, v in values.items()}


def _flat_ids(flat):
    return [fq.question.id for fq in flat]


def five_question_checklist():
    """5 root questions, 3 of them required."""
    return checklist_from_dict({
        "id": "c5", "name": "Five",
        "questions": [
            {"id": "R1", "text": "r1", "type": "Text", "required": True},
            {"id": "O1", "text": "o1", "type": "Text"},
            {"id": "R2", "text": "r2", "type": "Number", "required": True},
            {"id": "O2", "text": "o2", "type": "Text"},
            {"id": "R3", "text": "r3", "type": "Yes/No/NA", "required": True},
        ],
    })


def test_normalize_branch_value():
    assert normalize_branch_value("Yes") == "yes"
    assert normalize_branch_value(["No", "Yes"]) == "no"
    assert normalize_branch_value(True) == "true"
    assert normalize_branch_value([]) is None
    assert normalize_branch_value(None) is None


def test_flatten_without_answers_shows_roots_only():
    checklist = load_sample_checklist()
    flat = flatten_questions(checklist.questions, {})
    assert _flat_ids(flat) == ["Q1_SITE_ACCESS", "Q2_LABEL_CHECK", "Q3_CONT_COUNT", "Q4_COMP_DATE", "Q5_ADD_NOTES"]
    assert all(fq.depth == 0 for fq in flat)


def test_if_no_branch_shows_one_nested_entry():
    checklist = load_sample_checklist()
    flat = flatten_questions(checklist.questions, _answers(Q1_SITE_ACCESS="No"))
    assert len(flat) == 6
    nested = flat[1]
    assert nested.question.id == "Q1_EQUIP_REQ"
    assert nested.depth == 1
    assert nested.branch == Branch.IF_NO
    assert nested.parent_answer == "no"


def test_yes_answer_hides_if_no_branch():
    checklist = load_sample_checklist()
    flat = flatten_questions(checklist.questions, _answers(Q1_SITE_ACCESS="Yes"))
    assert len(flat) == 5


def test_false_counts_as_no_and_na_matches_nothing():
    checklist = load_sample_checklist()
    assert len(flatten_questions(checklist.questions, _answers(Q1_SITE_ACCESS="false"))) == 6
    assert len(flatten_questions(checklist.questions, _answers(Q1_SITE_ACCESS="N/A"))) == 5


def test_multiple_if_no_children_in_definition_order():
    checklist = load_sample_checklist()
    flat = flatten_questions(checklist.questions, _answers(Q2_LABEL_CHECK="No"))
    assert _flat_ids(flat)[1:4] == ["Q2_LABEL_CHECK", "Q_UNLABELED", "Q2_CUST_NOTIF"]


def test_nested_branches_recurse():
    checklist = checklist_from_dict({
        "id": "deep", "name": "Deep",
        "questions": [{
            "id": "A", "text": "a", "type": "Yes/No/NA",
            "conditionalQuestions": [{"branch": "IF YES", "question": {
                "id": "B", "text": "b", "type": "Yes/No/NA",
                "conditionalQuestions": [{"branch": "IF NO", "question": {"id": "C", "text": "c", "type": "Text"}}],
            }}],
        }],
    })
    flat = flatten_questions(checklist.questions, _answers(A="Yes", B="No"))
    assert [(fq.question.id, fq.depth) for fq in flat] == [("A", 0), ("B", 1), ("C", 2)]
    # Clearing the root answer hides the whole subtree even though B is still answered.
    flat = flatten_questions(checklist.questions, _answers(B="No"))
    assert _flat_ids(flat) == ["A"]


def test_flatten_is_idempotent():
    checklist = load_sample_checklist()
    answers = _answers(Q1_SITE_ACCESS="No", Q2_LABEL_CHECK="No")
    assert flatten_questions(checklist.questions, answers) == flatten_questions(checklist.questions, answers)


def test_is_answer_valid():
    required = ChecklistQuestion(id="q", text="t", type=QuestionType.TEXT, required=True)
    optional = ChecklistQuestion(id="o", text="t", type=QuestionType.TEXT)
    assert is_answer_valid(optional, None)
    assert not is_answer_valid(required, None)
    assert not is_answer_valid(required, ChecklistAnswer("q", None))
    assert not is_answer_valid(required, ChecklistAnswer("q", "   "))
    assert not is_answer_valid(required, ChecklistAnswer("q", []))
    assert is_answer_valid(required, ChecklistAnswer("q", "ok"))
    assert is_answer_valid(required, ChecklistAnswer("q", ["drums"]))
    assert is_answer_valid(required, ChecklistAnswer("q", 0))


def test_parse_number():
    assert parse_number("12") == 12
    assert parse_number(" 3.5 ") == 3.5
    assert parse_number("abc") is None
    assert parse_number("") is None
    assert parse_number("nan") is None
    assert parse_number(7) == 7
    assert parse_number("1_000") is None
    assert parse_number("12abc") is None


def test_toggle_choice_is_its_own_inverse():
    before = ["drums", "tanks"]
    after = toggle_choice(toggle_choice(before, "totes"), "totes")
    assert after == before
    assert toggle_choice(before, "drums") == ["tanks"]
    assert toggle_choice(None, "drums") == ["drums"]


def test_session_next_blocked_until_required_answered():
    session = ChecklistSession(load_sample_checklist())
    step = session.next()
    assert step["advanced"] is False
    assert step["error"]
    session.answer("Q1_SITE_ACCESS", "Yes")
    assert session.next() == {"advanced": True, "error": None}
    assert session.current_question().id == "Q2_LABEL_CHECK"


def test_session_previous_needs_no_validation():
    session = ChecklistSession(load_sample_checklist())
    session.answer("Q1_SITE_ACCESS", "Yes")
    session.next()
    assert session.previous() is True
    assert session.cursor == 0
    assert session.previous() is False


def test_branch_appears_after_current_question():
    session = ChecklistSession(load_sample_checklist())
    session.answer("Q1_SITE_ACCESS", "No")
    session.next()
    assert session.current_question().id == "Q1_EQUIP_REQ"
    assert session.current_flat().depth == 1


def test_cursor_clamps_when_sequence_shrinks():
    checklist = checklist_from_dict({
        "id": "c", "name": "n",
        "questions": [{
            "id": "A", "text": "a", "type": "Yes/No/NA",
            "conditionalQuestions": [
                {"branch": "IF NO", "question": {"id": "B", "text": "b", "type": "Text"}},
                {"branch": "IF NO", "question": {"id": "C", "text": "c", "type": "Text"}},
            ],
        }],
    })
    session = ChecklistSession(checklist)
    session.answer("A", "No")
    session.go_to(2)
    session.answer("A", "Yes")
    assert len(session.flat_questions) == 1
    assert session.cursor == 0


def test_clearing_answer_removes_descendants():
    session = ChecklistSession(load_sample_checklist())
    session.answer("Q2_LABEL_CHECK", "No")
    assert len(session.flat_questions) == 7
    session.clear_answer("Q2_LABEL_CHECK")
    assert len(session.flat_questions) == 5


def test_number_answer_non_numeric_is_unanswered():
    session = ChecklistSession(load_sample_checklist())
    session.answer("Q3_CONT_COUNT", "twelve")
    assert session.get_answer("Q3_CONT_COUNT").value is None
    session.answer("Q3_CONT_COUNT", "12")
    assert session.get_answer("Q3_CONT_COUNT").value == 12


def test_answer_number_parses_typed_input():
    session = ChecklistSession(load_sample_checklist())
    assert session.answer_number("Q3_CONT_COUNT", " 2.5 ") == 2.5
    assert session.answer_number("Q3_CONT_COUNT", "1_000") is None
    assert session.get_answer("Q3_CONT_COUNT").value is None


def test_session_toggle_returns_to_prior_state():
    session = ChecklistSession(load_sample_checklist())
    session.answer("Q2_LABEL_CHECK", "No")
    session.toggle("Q_UNLABELED", "drums")
    assert session.get_answer("Q_UNLABELED").value == ["drums"]
    session.toggle("Q_UNLABELED", "tanks")
    session.toggle("Q_UNLABELED", "tanks")
    assert session.get_answer("Q_UNLABELED").value == ["drums"]
    session.toggle("Q_UNLABELED", "drums")
    assert session.get_answer("Q_UNLABELED").value is None


def test_unknown_question_raises_key_error():
    session = ChecklistSession(load_sample_checklist())
    with pytest.raises(KeyError):
        session.answer("NOPE", "Yes")


def test_complete_reports_missing_count():
    session = ChecklistSession(five_question_checklist())
    session.answer("R2", "4")
    session.answer("O1", "note")
    result = session.complete()
    assert result == {"completed": False, "missing_count": 2, "first_missing_index": 0}
    assert session.state == SessionState.ANSWERING


def test_complete_moves_cursor_to_first_missing():
    session = ChecklistSession(five_question_checklist())
    session.answer("R1", "done")
    session.go_to(4)
    result = session.complete()
    assert result["first_missing_index"] == 2
    assert session.cursor == 2


def test_complete_counts_visible_branch_questions():
    session = ChecklistSession(load_sample_checklist())
    session.answer("Q1_SITE_ACCESS", "No")
    session.answer("Q2_LABEL_CHECK", "Yes")
    session.answer("Q3_CONT_COUNT", 3)
    session.answer("Q4_COMP_DATE", "2026-10-19")
    result = session.complete()
    assert result["missing_count"] == 1
    assert result["first_missing_index"] == 1


def test_complete_returns_visible_answers_in_order():
    session = ChecklistSession(load_sample_checklist())
    session.answer("Q1_SITE_ACCESS", "No")
    session.answer("Q1_EQUIP_REQ", "crane")
    session.answer("Q1_SITE_ACCESS", "Yes")  # hides Q1_EQUIP_REQ
    session.answer("Q2_LABEL_CHECK", "Yes")
    session.answer("Q3_CONT_COUNT", "5")
    session.answer("Q4_COMP_DATE", "2026-10-19")
    result = session.complete()
    assert result["completed"] is True
    assert [a.question_id for a in result["answers"]] == [
        "Q1_SITE_ACCESS", "Q2_LABEL_CHECK", "Q3_CONT_COUNT", "Q4_COMP_DATE",
    ]
    assert session.state == SessionState.COMPLETED


def test_completed_session_is_terminal():
    session = ChecklistSession(five_question_checklist())
    for qid, value in (("R1", "x"), ("R2", 1), ("R3", "Yes")):
        session.answer(qid, value)
    assert session.complete()["completed"] is True
    with pytest.raises(SessionClosedError):
        session.answer("O1", "late edit")
    with pytest.raises(SessionClosedError):
        session.next()


def test_cancel_discards_answers():
    session = ChecklistSession(load_sample_checklist())
    session.answer("Q1_SITE_ACCESS", "No")
    session.cancel()
    assert session.answers == {}
    assert session.state == SessionState.CANCELLED


def test_progress_fraction():
    session = ChecklistSession(load_sample_checklist())
    assert session.progress_fraction() == 0.0
    session.answer("Q1_SITE_ACCESS", "Yes")
    assert session.progress_fraction() == pytest.approx(1 / 5)
    session.answer("Q1_SITE_ACCESS", "No")
    assert session.progress_fraction() == pytest.approx(1 / 6)


def test_next_on_last_question_does_not_complete():
    session = ChecklistSession(five_question_checklist())
    session.go_to(4)
    session.answer("R3", "N/A")
    assert session.next() == {"advanced": False, "error": None}
    assert session.state == SessionState.ANSWERING


def test_fill_date_defaults_only_up_to_cursor():
    session = ChecklistSession(load_sample_checklist())
    session.fill_date_defaults(date(2026, 10, 19))
    assert session.get_answer("Q4_COMP_DATE") is None
    session.go_to(3)
    session.fill_date_defaults(date(2026, 10, 19))
    assert session.get_answer("Q4_COMP_DATE").value == "2026-10-19"
