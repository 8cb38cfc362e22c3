"""
Core data models for the stepper.

This module defines the execution session, the checkpoint events a running
program emits, and the single-slot resume handle a suspended program waits on.
"""

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .graph_model import AdjacencyList, format_number


# Terminal log line prefixes; external observers key off these exact strings.
MAIN_RETURN_SENTINEL = "__MAIN_RETURN__:"
EXCEPTION_SENTINEL = "__EXCEPTION__:"


class SessionStatus(Enum):
    """Lifecycle of one program run."""
    NOT_STARTED = "not_started"
    RUNNING = "running"
    SUSPENDED = "suspended"
    FINISHED = "finished"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.FINISHED, SessionStatus.FAILED)


class CheckpointKind(Enum):
    """Kinds of events a program can emit."""
    HIGHLIGHT_NODE = "highlight_node"
    HIGHLIGHT_EDGE = "highlight_edge"
    LOG = "log"


@dataclass(frozen=True)
class CheckpointEvent:
    """One entry of a session's event log."""
    kind: CheckpointKind
    payload: Dict[str, Any]
    sequence: int = 0
    timestamp: float = field(default_factory=time.time)
    terminal: bool = False

    @property
    def line(self) -> str:
        """The console line for this event."""
        if self.kind == CheckpointKind.HIGHLIGHT_NODE:
            return f"Highlight node {format_number(self.payload['index'])}"
        if self.kind == CheckpointKind.HIGHLIGHT_EDGE:
            return f"Highlight edge {format_number(self.payload['source'])}-{format_number(self.payload['target'])}"
        return str(self.payload['message'])

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'kind': self.kind.value,
            'payload': {k: v if isinstance(v, (int, float, str, bool, type(None))) else str(v)
                        for k, v in self.payload.items()},
            'sequence': self.sequence,
            'timestamp': self.timestamp,
            'terminal': self.terminal,
            'line': self.line,
        }


class ResumeHandle:
    """Single-slot permission a suspended checkpoint waits on.

    Releasing it fulfils the underlying future exactly once. A handle whose
    session was discarded is cancelled, and releasing it afterwards does
    nothing.
    """

    def __init__(self, future: 'asyncio.Future', session_id: str, sequence: int,
                 on_release: Optional[Callable[['ResumeHandle'], None]] = None):
        self._future = future
        self.session_id = session_id
        self.sequence = sequence
        self._on_release = on_release

    @property
    def pending(self) -> bool:
        return not self._future.done()

    @property
    def cancelled(self) -> bool:
        return self._future.cancelled()

    def release(self) -> bool:
        """Let the waiting checkpoint continue. Returns False if already released or cancelled."""
        if self._future.done():
            return False
        self._future.set_result(None)
        if self._on_release is not None:
            self._on_release(self)
        return True

    def cancel(self) -> bool:
        return self._future.cancel()

    async def wait(self):
        await self._future

    def __repr__(self) -> str:
        state = 'cancelled' if self.cancelled else ('pending' if self.pending else 'released')
        return f"ResumeHandle(session={self.session_id[:8]}, sequence={self.sequence}, {state})"


@dataclass
class ExecutionSession:
    """One run of a program against one graph."""
    source: str
    graph: AdjacencyList
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: SessionStatus = SessionStatus.NOT_STARTED
    events: List[CheckpointEvent] = field(default_factory=list)
    pending_handle: Optional[ResumeHandle] = None
    created_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None
    result: Any = None
    error: Optional[str] = None
    discarded: bool = False
    settled: asyncio.Event = field(default_factory=asyncio.Event, repr=False, compare=False)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def has_pending_checkpoint(self) -> bool:
        return self.pending_handle is not None and self.pending_handle.pending

    def append(self, kind: CheckpointKind, payload: Dict[str, Any], terminal: bool = False) -> CheckpointEvent:
        event = CheckpointEvent(kind=kind, payload=payload, sequence=len(self.events), terminal=terminal)
        self.events.append(event)
        return event

    def log_lines(self) -> List[str]:
        return [event.line for event in self.events]

    async def wait_settled(self):
        """Wait until the program is suspended at a checkpoint or has terminated."""
        await self.settled.wait()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'status': self.status.value,
            'events': [event.to_dict() for event in self.events],
            'log': self.log_lines(),
            'pending_checkpoint': self.has_pending_checkpoint,
            'node_count': self.graph.node_count,
            'created_at': self.created_at,
            'finished_at': self.finished_at,
            'error': self.error,
        }
