"""Tests for the command history: undo/redo, batches and command inverses."""

from __future__ import annotations

import pytest

from graphedit.history import Command, CommandHistory, CompoundCommand, HistoryChanged, IdentityCommand


# -----------------------------------------------------------------------------
# Test fixtures
# -----------------------------------------------------------------------------


class Counter:
    def __init__(self) -> None:
        self.value = 0


class AddCommand(Command):
    """Adds `amount` to a counter; the inverse subtracts it."""

    def __init__(self, counter: Counter, amount: int, title: str = "Add") -> None:
        self.counter = counter
        self.amount = amount
        self.title = title

    def execute(self) -> Command:
        self.counter.value += self.amount
        return AddCommand(self.counter, -self.amount, self.title)


@pytest.fixture
def counter() -> Counter:
    return Counter()


@pytest.fixture
def history() -> CommandHistory:
    return CommandHistory()


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------


def test_double_inverse_is_identity(counter: Counter) -> None:
    command = AddCommand(counter, 5)
    inverse = command.execute()
    assert counter.value == 5
    inverse.execute().execute()
    assert counter.value == 0


def test_compound_runs_inverses_in_reverse_order() -> None:
    log: list[str] = []

    def step(name: str) -> Command:
        def action() -> Command:
            log.append(name)
            return unstep(name)

        return Command.create(name, action)

    def unstep(name: str) -> Command:
        def action() -> Command:
            log.append(f"undo {name}")
            return step(name)

        return Command.create(f"undo {name}", action)

    compound = Command.compound("both", [step("a"), step("b")])
    inverse = compound.execute()
    inverse.execute()
    assert log == ["a", "b", "undo b", "undo a"]


def test_compound_layout_only_when_all_parts_are() -> None:
    assert CompoundCommand("x", (IdentityCommand("a"), IdentityCommand("b"))).layout_only is True
    assert CompoundCommand("x", (IdentityCommand("a"), AddCommand(Counter(), 1))).layout_only is False


def test_effect_runs_forward_only(counter: Counter) -> None:
    effect = Command.effect("bump", lambda: setattr(counter, "value", counter.value + 1))
    skip = effect.execute()
    assert counter.value == 1
    again = skip.execute()
    assert counter.value == 1
    again.execute()
    assert counter.value == 2


# -----------------------------------------------------------------------------
# History
# -----------------------------------------------------------------------------


class TestUndoRedo:
    def test_undo_and_redo_restore_state(self, history: CommandHistory, counter: Counter) -> None:
        history.execute(AddCommand(counter, 1))
        history.execute(AddCommand(counter, 10))
        assert counter.value == 11

        assert history.undo() is True
        assert counter.value == 1
        assert history.undo() is True
        assert counter.value == 0

        assert history.redo() is True
        assert history.redo() is True
        assert counter.value == 11

    def test_empty_stacks_are_noops(self, history: CommandHistory) -> None:
        assert history.undo() is False
        assert history.redo() is False

    def test_execute_clears_redo(self, history: CommandHistory, counter: Counter) -> None:
        history.execute(AddCommand(counter, 1))
        history.execute(AddCommand(counter, 2))
        history.undo()
        assert len(history.redo_stack) == 1

        history.execute(AddCommand(counter, 3))
        assert history.redo_stack == ()
        assert counter.value == 4

    def test_reset_clears_both_stacks(self, history: CommandHistory, counter: Counter) -> None:
        history.execute(AddCommand(counter, 1))
        history.execute(AddCommand(counter, 1))
        history.undo()
        history.reset()
        assert history.undo_stack == ()
        assert history.redo_stack == ()
        assert history.has_changes is False

    def test_history_changed_event(self, history: CommandHistory, counter: Counter) -> None:
        seen: list[HistoryChanged] = []
        history.events.on("history_changed", seen.append)
        history.execute(AddCommand(counter, 1))
        history.undo()
        assert [e.has_changes for e in seen] == [True, False]

    def test_has_data_changes_ignores_layout_only(self, history: CommandHistory) -> None:
        history.execute(IdentityCommand("nothing"))
        assert history.has_changes is True
        assert history.has_data_changes is False


class TestBatches:
    def test_batch_is_one_undo_step(self, history: CommandHistory, counter: Counter) -> None:
        batch = history.start_batch("several")
        history.execute(AddCommand(counter, 1))
        history.execute(AddCommand(counter, 2))
        history.execute(AddCommand(counter, 3))
        entry = batch.store()

        assert entry is not None
        assert entry.title == "several"
        assert len(history.undo_stack) == 1
        history.undo()
        assert counter.value == 0
        history.redo()
        assert counter.value == 6

    def test_empty_batch_stores_nothing(self, history: CommandHistory) -> None:
        batch = history.start_batch("empty")
        assert batch.store() is None
        assert history.undo_stack == ()

    def test_discarded_batch_keeps_effects(self, history: CommandHistory, counter: Counter) -> None:
        batch = history.start_batch("preview")
        history.execute(AddCommand(counter, 7))
        batch.discard()
        assert counter.value == 7
        assert history.undo_stack == ()

    def test_nested_batches_fold_into_outer(self, history: CommandHistory, counter: Counter) -> None:
        outer = history.start_batch("outer")
        history.execute(AddCommand(counter, 1))
        inner = history.start_batch("inner")
        history.execute(AddCommand(counter, 2))
        inner.store()
        outer.store()

        assert len(history.undo_stack) == 1
        history.undo()
        assert counter.value == 0

    def test_closing_outer_stores_unclosed_inner(self, history: CommandHistory, counter: Counter) -> None:
        outer = history.start_batch("outer")
        history.start_batch("inner")
        history.execute(AddCommand(counter, 2))
        outer.store()

        assert history.active_batch is None
        assert len(history.undo_stack) == 1

    def test_storing_twice_is_ignored(self, history: CommandHistory, counter: Counter) -> None:
        batch = history.start_batch("once")
        history.execute(AddCommand(counter, 1))
        batch.store()
        assert batch.store() is None
        assert len(history.undo_stack) == 1

    def test_context_manager_stores_on_success(self, history: CommandHistory, counter: Counter) -> None:
        with history.start_batch("ok"):
            history.execute(AddCommand(counter, 1))
        assert len(history.undo_stack) == 1

    def test_context_manager_discards_on_error(self, history: CommandHistory, counter: Counter) -> None:
        with pytest.raises(RuntimeError):
            with history.start_batch("fails"):
                history.execute(AddCommand(counter, 1))
                raise RuntimeError("boom")
        assert history.undo_stack == ()
        assert history.active_batch is None
        # No automatic rollback.
        assert counter.value == 1
