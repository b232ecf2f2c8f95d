"""
Command history: reversible operations with undo/redo and batching.

A Command performs a state transition in `execute()` and returns the
command that reverts it. History keeps the returned inverses:

- execute(c): run c, push its inverse to the undo stack, clear redo
- undo(): pop and run an inverse, push what it returns to the redo stack
- start_batch(): accumulate inverses; store() records them as one entry,
  discard() keeps the effects but records nothing

Executing a new command clears the whole redo stack. There is no branching
history.

There is no automatic rollback: a command raising mid-way leaves whatever
it already applied. Use the batch as a context manager to at least keep
the partial work out of the undo stack.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Iterable

from .events import EventSource

logger = logging.getLogger(__name__)


class Command(ABC):
    """A named, reversible unit of change."""

    title: str
    layout_only: bool = False

    @abstractmethod
    def execute(self) -> Command:
        """Apply the change and return the command that reverts it."""

    @staticmethod
    def create(title: str, action: Callable[[], Command]) -> Command:
        return FunctionCommand(title, action)

    @staticmethod
    def effect(title: str, body: Callable[[], None]) -> Command:
        return EffectCommand(title, body)

    @staticmethod
    def compound(title: str, commands: Iterable[Command]) -> Command:
        return CompoundCommand(title, tuple(commands))

    @staticmethod
    def identity(title: str) -> Command:
        return IdentityCommand(title)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.title!r}>"


class FunctionCommand(Command):
    """Command whose `action` performs the change and returns the inverse."""

    def __init__(self, title: str, action: Callable[[], Command], *, layout_only: bool = False) -> None:
        self.title = title
        self.action = action
        self.layout_only = layout_only

    def execute(self) -> Command:
        return self.action()


class EffectCommand(Command):
    """Runs `body` when applied forward; reverting it does nothing."""

    def __init__(self, title: str, body: Callable[[], None]) -> None:
        self.title = title
        self.body = body

    def execute(self) -> Command:
        self.body()
        return _SkipEffect(self)


class _SkipEffect(Command):
    def __init__(self, effect: EffectCommand) -> None:
        self.title = effect.title
        self.effect = effect

    def execute(self) -> Command:
        return self.effect


class CompoundCommand(Command):
    """Runs commands in order; the inverse runs their inverses in reverse."""

    def __init__(self, title: str, commands: tuple[Command, ...]) -> None:
        self.title = title
        self.commands = commands
        self.layout_only = all(c.layout_only for c in commands)

    def execute(self) -> Command:
        inverses = [command.execute() for command in self.commands]
        inverses.reverse()
        return CompoundCommand(self.title, tuple(inverses))


class IdentityCommand(Command):
    """Changes nothing; its own inverse."""

    layout_only = True

    def __init__(self, title: str) -> None:
        self.title = title

    def execute(self) -> Command:
        return self


@dataclass(frozen=True)
class HistoryChanged:
    has_changes: bool


class CommandHistory:
    """Undo/redo stacks of inverse commands, plus open batches."""

    def __init__(self) -> None:
        self.events = EventSource()
        self._undo: list[Command] = []
        self._redo: list[Command] = []
        self._batches: list[CommandBatch] = []

    @property
    def undo_stack(self) -> tuple[Command, ...]:
        return tuple(self._undo)

    @property
    def redo_stack(self) -> tuple[Command, ...]:
        return tuple(self._redo)

    @property
    def has_changes(self) -> bool:
        return bool(self._undo)

    @property
    def has_data_changes(self) -> bool:
        """True if anything on the undo stack changes more than layout."""
        return any(not command.layout_only for command in self._undo)

    @property
    def active_batch(self) -> CommandBatch | None:
        return self._batches[-1] if self._batches else None

    def execute(self, command: Command) -> None:
        inverse = command.execute()
        self.register_to_undo(inverse)

    def register_to_undo(self, command: Command) -> None:
        """Record an already-applied change by its inverse."""
        if self._batches:
            self._batches[-1]._commands.append(command)
            return
        self._undo.append(command)
        self._redo.clear()
        self._notify()

    def undo(self) -> bool:
        if not self._undo:
            logger.debug("Nothing to undo")
            return False
        command = self._undo.pop()
        self._redo.append(command.execute())
        self._notify()
        return True

    def redo(self) -> bool:
        if not self._redo:
            logger.debug("Nothing to redo")
            return False
        command = self._redo.pop()
        self._undo.append(command.execute())
        self._notify()
        return True

    def reset(self) -> None:
        if self._batches:
            logger.warning("Resetting history with %d open batch(es)", len(self._batches))
        self._undo.clear()
        self._redo.clear()
        self._batches.clear()
        self._notify()

    def start_batch(self, title: str = "") -> CommandBatch:
        batch = CommandBatch(self, title)
        self._batches.append(batch)
        return batch

    def _close_batch(self, batch: CommandBatch) -> bool:
        if batch not in self._batches:
            return False
        while self._batches[-1] is not batch:
            inner = self._batches[-1]
            logger.warning("Storing unclosed inner batch %r before %r", inner.title, batch.title)
            inner.store()
        self._batches.pop()
        return True

    def _notify(self) -> None:
        self.events.trigger("history_changed", HistoryChanged(has_changes=self.has_changes))


class CommandBatch:
    """
    An open sequence of changes recorded as one history entry.

    Usable as a context manager: stored on normal exit, discarded when
    the block raises.
    """

    def __init__(self, history: CommandHistory, title: str) -> None:
        self.history = history
        self.title = title
        self._commands: list[Command] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def store(self) -> Command | None:
        """Record accumulated changes as one entry; returns the entry, if any."""
        if not self._close():
            return None
        if not self._commands:
            return None
        entry = Command.compound(self.title, reversed(self._commands))
        self.history.register_to_undo(entry)
        return entry

    def discard(self) -> None:
        """Keep the applied changes but record nothing."""
        self._close()

    def _close(self) -> bool:
        if self._closed:
            logger.warning("Batch %r is already closed", self.title)
            return False
        self._closed = True
        if not self.history._close_batch(self):
            logger.warning("Batch %r is not open in its history", self.title)
            return False
        return True

    def __enter__(self) -> CommandBatch:
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if not self._closed:
            if exc_type is None:
                self.store()
            else:
                self.discard()
        return False
