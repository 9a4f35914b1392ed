from __future__ import annotations
import logging
from typing import Dict, List, Optional

from .catalog import find_question
from .types import Answer, Catalog

log = logging.getLogger(__name__)


class AnswerAccumulator:
    """At most one option per question; a new pick replaces the old one in place."""

    def __init__(self, catalog: Catalog):
        self.catalog = catalog
        self._picked: Dict[str, str] = {}

    def select(self, question_id: str, option_id: str) -> bool:
        q = find_question(self.catalog, question_id)
        if q is None:
            log.warning("select ignored: unknown question %s", question_id)
            return False
        if q.option(option_id) is None:
            log.warning("select ignored: unknown option %s for question %s", option_id, question_id)
            return False
        self._picked[question_id] = option_id
        return True

    def has_answer(self, question_id: str) -> bool:
        return question_id in self._picked

    def option_for(self, question_id: str) -> Optional[str]:
        return self._picked.get(question_id)

    def is_complete(self) -> bool:
        return all(q.id in self._picked for q in self.catalog.questions)

    def answers(self) -> List[Answer]:
        return [Answer(question_id=qid, option_id=oid) for qid, oid in self._picked.items()]

    def clear(self) -> None:
        self._picked.clear()

    def __len__(self) -> int:
        return len(self._picked)
