"""Load checklist definitions from JSON or YAML files."""
import json
from pathlib import Path
from typing import Iterator

from hazcollect.models import (
    CHOICE_TYPES, Branch, Checklist, ChecklistQuestion, Choice, ConditionalQuestion, QuestionType,
)

CONTENT_DIR = Path(__file__).parent / "content"
SAMPLE_CHECKLIST = CONTENT_DIR / "sample_checklist.json"


class ChecklistDefinitionError(ValueError):
    """Raised when a checklist definition is malformed."""


def read_checklist_file(file_path: str) -> dict:
    path = Path(file_path)
    suffix = path.suffix.lower()
    if suffix == ".json":
        data = json.loads(path.read_text())
    elif suffix in (".yaml", ".yml"):
        import yaml
        data = yaml.safe_load(path.read_text())
    else:
        raise ChecklistDefinitionError(f"Unsupported checklist file type: {suffix or path.name}")
    if not isinstance(data, dict):
        raise ChecklistDefinitionError(f"{path.name}: expected a mapping at the top level")
    return data


def _require(data: dict, key: str, where: str):
    if key not in data or data[key] in (None, ""):
        raise ChecklistDefinitionError(f"{where}: missing '{key}'")
    return data[key]


def _choice_from_dict(data, qid: str) -> Choice:
    if not isinstance(data, dict):
        raise ChecklistDefinitionError(f"{qid}: choice must be a mapping, got {data!r}")
    choice_id = str(_require(data, "id", f"{qid} choice"))
    return Choice(id=choice_id, label=str(data.get("label") or choice_id))


def _question_from_dict(data: dict, seen: set[str]) -> ChecklistQuestion:
    if not isinstance(data, dict):
        raise ChecklistDefinitionError(f"question must be a mapping, got {data!r}")
    qid = str(_require(data, "id", "question"))
    if qid in seen:
        raise ChecklistDefinitionError(f"Duplicate question id: {qid}")
    seen.add(qid)

    raw_type = _require(data, "type", qid)
    try:
        qtype = QuestionType(raw_type)
    except ValueError:
        raise ChecklistDefinitionError(f"{qid}: unknown question type {raw_type!r}") from None

    choices = [_choice_from_dict(c, qid) for c in data.get("choices") or []]
    if qtype in CHOICE_TYPES and not choices:
        raise ChecklistDefinitionError(f"{qid}: {qtype.value} question needs at least one choice")

    conditionals = []
    for cond in data.get("conditionalQuestions") or data.get("conditional_questions") or []:
        if not isinstance(cond, dict):
            raise ChecklistDefinitionError(f"{qid}: conditional question must be a mapping")
        raw_branch = _require(cond, "branch", qid)
        try:
            branch = Branch(raw_branch)
        except ValueError:
            raise ChecklistDefinitionError(f"{qid}: unknown branch {raw_branch!r}") from None
        nested = _require(cond, "question", qid)
        conditionals.append(ConditionalQuestion(branch=branch, question=_question_from_dict(nested, seen)))

    return ChecklistQuestion(
        id=qid,
        text=str(_require(data, "text", qid)),
        type=qtype,
        required=bool(data.get("required", False)),
        description=data.get("description") or "",
        tags=list(data.get("tags") or []),
        choices=choices,
        conditional_questions=conditionals,
    )


def checklist_from_dict(data: dict) -> Checklist:
    """Build a Checklist, enforcing tree-wide unique question ids and choice lists."""
    seen: set[str] = set()
    questions = [_question_from_dict(q, seen) for q in data.get("questions") or []]
    return Checklist(
        id=str(_require(data, "id", "checklist")),
        name=str(_require(data, "name", "checklist")),
        questions=questions,
        description=data.get("description") or "",
        customer_id=data.get("customerId"),
        customer_name=data.get("customerName"),
        status=data.get("status", "Active"),
    )


def load_checklist(file_path: str) -> Checklist:
    return checklist_from_dict(read_checklist_file(file_path))


def load_sample_checklist() -> Checklist:
    return load_checklist(str(SAMPLE_CHECKLIST))


def iter_questions(questions: list[ChecklistQuestion]) -> Iterator[ChecklistQuestion]:
    """Walk the static question tree depth-first, ignoring answers."""
    for question in questions:
        yield question
        for cond in question.conditional_questions:
            yield from iter_questions([cond.question])
