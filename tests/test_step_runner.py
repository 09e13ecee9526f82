"""Ordered turn steps."""

import pytest

from smart_catalog.step_runner import StepRunner, TurnStep


def test_steps_run_in_order():
    seen = []
    runner = StepRunner(
        [
            TurnStep("first", lambda ctx: seen.append("first")),
            TurnStep("middle", lambda ctx: seen.append("middle")),
            TurnStep("last", lambda ctx: seen.append("last")),
        ]
    )

    runner.run(object())

    assert seen == ["first", "middle", "last"]


def test_step_errors_stop_the_run():
    seen = []

    def boom(ctx):
        raise RuntimeError("boom")

    runner = StepRunner([TurnStep("boom", boom), TurnStep("after", lambda ctx: seen.append("after"))])

    with pytest.raises(RuntimeError):
        runner.run(object())
    assert seen == []


def test_duplicate_step_names_are_rejected():
    with pytest.raises(ValueError):
        StepRunner([TurnStep("same", print), TurnStep("same", print)])
