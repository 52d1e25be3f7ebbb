"""Tests for data model classes."""
from hazcollect.models import (
    Checklist, ChecklistAnswer, ChecklistQuestion, FlatQuestion, OperationType, PendingOperation,
    QuestionType, Severity, ValidationIssue,
)


def test_question_defaults():
    q = ChecklistQuestion(id="Q1", text="Site accessible?", type=QuestionType.YES_NO_NA)
    assert q.required is False
    assert q.description == ""
    assert q.tags == []
    assert q.choices == []
    assert q.conditional_questions == []


def test_question_type_values_match_definition_files():
    assert QuestionType("Yes/No/NA") == QuestionType.YES_NO_NA
    assert QuestionType("Multiple Choice") == QuestionType.MULTIPLE_CHOICE


def test_checklist_defaults():
    c = Checklist(id="c1", name="Pickup", questions=[])
    assert c.status == "Active"
    assert c.customer_id is None


def test_answer_and_flat_defaults():
    a = ChecklistAnswer(question_id="Q1")
    assert a.value is None
    q = ChecklistQuestion(id="Q1", text="t", type=QuestionType.TEXT)
    fq = FlatQuestion(question=q)
    assert fq.depth == 0
    assert fq.branch is None
    assert fq.parent_answer is None


def test_pending_operation_dict_roundtrip():
    op = PendingOperation(id="op_1", type=OperationType.MANIFEST, payload={"m": 1}, enqueued_at=5)
    data = op.to_dict()
    assert data["type"] == "manifest"
    assert data["retry_count"] == 0
    assert PendingOperation.from_dict(data) == op


def test_validation_issue_dict_omits_missing_description():
    issue = ValidationIssue(id="i1", message="Missing signature", severity=Severity.ERROR, screen="manifest")
    assert "description" not in issue.to_dict()
    assert ValidationIssue.from_dict(issue.to_dict()) == issue
