from __future__ import annotations

import logging

from funnel_core.accumulator import AnswerAccumulator
from funnel_core.types import Answer
from tests.conftest import build_weighted_catalog


def test_last_write_wins_in_place():
    acc = AnswerAccumulator(build_weighted_catalog())
    assert acc.select("w1", "w1-a")
    assert acc.select("w2", "w2-b")
    assert acc.select("w1", "w1-c")

    assert acc.answers() == [Answer("w1", "w1-c"), Answer("w2", "w2-b")]
    assert len(acc) == 2
    assert acc.option_for("w1") == "w1-c"


def test_unknown_ids_warn_and_change_nothing(caplog):
    acc = AnswerAccumulator(build_weighted_catalog())
    acc.select("w1", "w1-a")
    with caplog.at_level(logging.WARNING):
        assert not acc.select("w9", "w9-a")
        assert not acc.select("w1", "w2-a")
    assert acc.answers() == [Answer("w1", "w1-a")]
    assert "unknown question w9" in caplog.text
    assert "unknown option w2-a" in caplog.text


def test_complete_only_when_every_question_answered():
    acc = AnswerAccumulator(build_weighted_catalog())
    for i in (1, 2):
        acc.select(f"w{i}", f"w{i}-a")
    assert not acc.is_complete()
    acc.select("w3", "w3-a")
    assert acc.is_complete()
    acc.clear()
    assert not acc.has_answer("w1")
