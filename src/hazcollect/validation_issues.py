"""Per-order validation issues that persist until validation stops reporting them."""
import logging

from hazcollect.models import ValidationIssue
from hazcollect.storage import KeyValueStore, read_json, write_json

logger = logging.getLogger(__name__)

STORAGE_KEY = "validation_issues"


class ValidationIssueStore:
    def __init__(self, store: KeyValueStore):
        self.store = store
        self._issues: dict[str, list[ValidationIssue]] = {}
        self.load()

    def load(self) -> None:
        stored = read_json(self.store, STORAGE_KEY, default={})
        issues: dict[str, list[ValidationIssue]] = {}
        if isinstance(stored, dict):
            for order_number, items in stored.items():
                try:
                    issues[order_number] = [ValidationIssue.from_dict(item) for item in items]
                except (KeyError, TypeError, ValueError):
                    logger.error("Dropping unreadable validation issues for order %s", order_number)
        self._issues = issues

    def reload(self) -> None:
        self.load()

    def _save(self) -> None:
        write_json(
            self.store,
            STORAGE_KEY,
            {order: [issue.to_dict() for issue in items] for order, items in self._issues.items()},
        )

    def get_persisted_issues(self, order_number: str) -> list[ValidationIssue]:
        return list(self._issues.get(order_number, []))

    def update_issues(self, order_number: str, current: list[ValidationIssue]) -> list[ValidationIssue]:
        """Merge freshly computed issues with the stored ones.

        A stored issue survives only while it is still in ``current``; issues
        in ``current`` that were not stored yet are appended after them.
        """
        persisted = self._issues.get(order_number, [])
        current_ids = {issue.id for issue in current}
        persisted_ids = {issue.id for issue in persisted}

        still_open = [issue for issue in persisted if issue.id in current_ids]
        new_issues = []
        for issue in current:
            if issue.id not in persisted_ids:
                new_issues.append(issue)
                persisted_ids.add(issue.id)
        merged = still_open + new_issues

        if merged:
            self._issues[order_number] = merged
        else:
            self._issues.pop(order_number, None)
        self._save()
        return list(merged)

    def clear_issues(self, order_number: str) -> None:
        self._issues.pop(order_number, None)
        self._save()

    def resolve_issue(self, order_number: str, issue_id: str) -> None:
        if order_number not in self._issues:
            return
        remaining = [issue for issue in self._issues[order_number] if issue.id != issue_id]
        if remaining:
            self._issues[order_number] = remaining
        else:
            del self._issues[order_number]
        self._save()

    def get_all_issues(self) -> dict[str, list[ValidationIssue]]:
        return {order: list(items) for order, items in self._issues.items()}
