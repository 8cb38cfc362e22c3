"""
Execution engine for step-by-step narration of graph algorithms.

The ``CheckpointCoordinator`` owns one execution session at a time. It runs
the user's program as an ``asyncio`` task; every ``await anim.<primitive>()``
call is a checkpoint that records an event, forwards it to the renderer and
parks the program on a single-slot ``ResumeHandle`` until a controller calls
``resume()``.

Programs:
  • SourceProgram    : user source defining ``class Solution`` with ``async def main``
  • CoroutineProgram : an ``async def fn(anim, graph)`` supplied by host code
"""

import asyncio
import builtins
import inspect
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from .exceptions import CoordinatorInvariantViolation, ProgramLoadError
from .execution_visualizer import RenderSync
from .graph_model import AdjacencyList
from .models import (
    CheckpointEvent, CheckpointKind, ExecutionSession, ResumeHandle, SessionStatus,
    EXCEPTION_SENTINEL, MAIN_RETURN_SENTINEL,
)

logger = logging.getLogger(__name__)


DEFAULT_PROGRAM = '''# Write your Solution class here
class Solution:
  def __init__(self, graph):
    # graph is either adjacency list [[1,2],[3],...] (unweighted)
    # or adjacency list with weights [[[1,5],[2,3]], [[3,2]], [], []]
    self.graph = graph

  async def main(self):
    n = len(self.graph)
    for i in range(n):
      await anim.highlight_node(i)
      # Example to show edges and weights if weighted:
      for edge in self.graph[i]:
        if isinstance(edge, list) and len(edge) == 2:
          v, w = edge
          await anim.highlight_edge(i, v)
          await anim.log(f"Edge {i} -> {v} with weight {w}")
        else:
          # unweighted
          v = edge
          await anim.highlight_edge(i, v)
          await anim.log(f"Edge {i} -> {v}")
'''


class Anim:
    """Checkpoint primitives exposed to a running program as ``anim``.

    Bound to one session; calls made after that session was discarded end
    the program instead of touching the new session.
    """

    def __init__(self, coordinator: 'CheckpointCoordinator', session: ExecutionSession):
        self._coordinator = coordinator
        self._session = session

    async def highlight_node(self, i):
        await self._coordinator.checkpoint(self._session, CheckpointKind.HIGHLIGHT_NODE, {'index': i})

    async def highlight_edge(self, u, v):
        await self._coordinator.checkpoint(self._session, CheckpointKind.HIGHLIGHT_EDGE,
                                           {'source': u, 'target': v})

    async def log(self, msg):
        if not isinstance(msg, str):
            msg = str(msg)
        await self._coordinator.checkpoint(self._session, CheckpointKind.LOG, {'message': msg})

    def update_graph(self, new_graph):
        """Redraw the graph immediately; does not pause the program."""
        self._coordinator.update_graph(self._session, new_graph)


@dataclass
class ProgramContext:
    """What a program gets to see while it runs."""
    anim: Anim
    graph: List[List[Any]]

    def update_graph(self, new_graph):
        self.anim.update_graph(new_graph)


class Program(ABC):
    """A program yields checkpoints while it runs and ends with one return value or error."""

    source: str = ""

    @abstractmethod
    async def run(self, context: ProgramContext) -> Any:
        """Run to completion, awaiting checkpoints through ``context.anim``."""


class SourceProgram(Program):
    """User source text defining a ``Solution`` class.

    The source runs in a fresh namespace holding ``anim``, ``graph``,
    ``update_graph`` and ``asyncio``. ``Solution(graph).main()`` is awaited
    when present; a class without ``main`` returns ``None``.
    """

    ENTRY_CLASS = 'Solution'
    ENTRY_METHOD = 'main'

    def __init__(self, source: str, filename: str = '<solution>'):
        self.source = source
        self.filename = filename

    def build_namespace(self, context: ProgramContext) -> Dict[str, Any]:
        return {
            '__name__': '__solution__',
            '__builtins__': builtins,
            'asyncio': asyncio,
            'anim': context.anim,
            'graph': context.graph,
            'update_graph': context.update_graph,
        }

    async def run(self, context: ProgramContext) -> Any:
        code = compile(self.source, self.filename, 'exec')
        namespace = self.build_namespace(context)
        exec(code, namespace)

        solution_cls = namespace.get(self.ENTRY_CLASS)
        if solution_cls is None:
            raise ProgramLoadError(f"name '{self.ENTRY_CLASS}' is not defined")

        solution = solution_cls(context.graph)
        entry = getattr(solution, self.ENTRY_METHOD, None)
        if entry is None:
            return None
        result = entry()
        if inspect.isawaitable(result):
            result = await result
        return result


class CoroutineProgram(Program):
    """Wraps ``async def fn(anim, graph)`` as a program."""

    def __init__(self, fn: Callable[[Anim, List[List[Any]]], Awaitable[Any]], source: str = ""):
        self.fn = fn
        self.source = source or getattr(fn, '__qualname__', repr(fn))

    async def run(self, context: ProgramContext) -> Any:
        return await self.fn(context.anim, context.graph)


class CheckpointCoordinator:
    """Runs one program at a time and lets it advance one checkpoint per ``resume()``.

    Exactly one resume handle may be outstanding per session. A program that
    awaits a second checkpoint while the first is still pending (for example
    two ``anim`` calls gathered concurrently) gets a
    ``CoordinatorInvariantViolation`` and nothing is recorded for it.
    """

    def __init__(self, render_sync: Optional[RenderSync] = None):
        self.render_sync = render_sync
        self.session: Optional[ExecutionSession] = None
        self._task: Optional[asyncio.Task] = None
        self._terminal_listeners: List[Callable[[ExecutionSession], None]] = []
        self._teardown_listeners: List[Callable[[ExecutionSession], None]] = []

    # ------------------------------------------------------------------
    # listeners
    # ------------------------------------------------------------------

    def add_terminal_listener(self, listener: Callable[[ExecutionSession], None]):
        """Call ``listener(session)`` synchronously when a session finishes or fails."""
        self._terminal_listeners.append(listener)

    def add_teardown_listener(self, listener: Callable[[ExecutionSession], None]):
        """Call ``listener(session)`` when a session is discarded."""
        self._teardown_listeners.append(listener)

    def _notify(self, listeners: List[Callable[[ExecutionSession], None]], session: ExecutionSession):
        for listener in list(listeners):
            try:
                listener(session)
            except Exception:
                logger.exception(f"Session listener {listener!r} failed")

    # ------------------------------------------------------------------
    # session lifecycle
    # ------------------------------------------------------------------

    @property
    def status(self) -> SessionStatus:
        return self.session.status if self.session is not None else SessionStatus.NOT_STARTED

    async def start(self, program: Union[Program, str], graph: AdjacencyList) -> ExecutionSession:
        """Discard any current session and run ``program`` against ``graph``.

        Returns once the program is parked at its first checkpoint or has
        terminated.
        """
        if isinstance(program, str):
            program = SourceProgram(program)

        self.teardown()

        session = ExecutionSession(source=program.source, graph=graph)
        session.status = SessionStatus.RUNNING
        self.session = session

        if self.render_sync is not None:
            self._call_render('load_graph', graph)
            self._call_render('clear_console')

        context = ProgramContext(anim=Anim(self, session), graph=graph.to_python())
        logger.info(f"Session {session.id[:8]} started on a {graph.node_count}-node graph")
        self._task = asyncio.ensure_future(self._run(session, program, context))

        await session.wait_settled()
        return session

    def teardown(self) -> Optional[ExecutionSession]:
        """Discard the current session: cancel its resume handle and its task."""
        session, task = self.session, self._task
        self.session = None
        self._task = None
        if session is None:
            return None

        session.discarded = True
        handle, session.pending_handle = session.pending_handle, None
        if handle is not None:
            handle.cancel()
        if task is not None and not task.done():
            task.cancel()
        session.settled.set()

        logger.info(f"Session {session.id[:8]} discarded ({session.status.value})")
        self._notify(self._teardown_listeners, session)
        return session

    async def _run(self, session: ExecutionSession, program: Program, context: ProgramContext):
        try:
            result = await program.run(context)
        except asyncio.CancelledError:
            logger.debug(f"Session {session.id[:8]} task cancelled")
            raise
        except BaseException as e:
            # SystemExit, KeyboardInterrupt and user BaseException subclasses end the program too
            if session.discarded:
                return
            logger.warning(f"Session {session.id[:8]} failed: {type(e).__name__}: {e}")
            session.error = str(e)
            self._terminate(session, SessionStatus.FAILED, f"{EXCEPTION_SENTINEL}{e}")
        else:
            if session.discarded:
                return
            session.result = result
            self._terminate(session, SessionStatus.FINISHED, f"{MAIN_RETURN_SENTINEL}{result}")

    def _terminate(self, session: ExecutionSession, status: SessionStatus, line: str):
        handle, session.pending_handle = session.pending_handle, None
        if handle is not None:
            handle.cancel()
        session.status = status
        session.finished_at = time.time()
        event = session.append(CheckpointKind.LOG, {'message': line}, terminal=True)
        self._forward(event)
        session.settled.set()
        logger.info(f"Session {session.id[:8]} {status.value} after {len(session.events) - 1} events")
        self._notify(self._terminal_listeners, session)

    # ------------------------------------------------------------------
    # checkpoints
    # ------------------------------------------------------------------

    async def checkpoint(self, session: ExecutionSession, kind: CheckpointKind, payload: Dict[str, Any]):
        """Record an event, show it, and wait until the controller resumes."""
        if session.discarded or session is not self.session:
            raise asyncio.CancelledError()

        if session.has_pending_checkpoint:
            logger.warning(f"Session {session.id[:8]} rejected {kind.value}: checkpoint "
                           f"{session.pending_handle.sequence} is still pending")
            raise CoordinatorInvariantViolation(
                f"Checkpoint {kind.value} registered while checkpoint "
                f"{session.pending_handle.sequence} is still pending",
                session_id=session.id,
                details={'pending_sequence': session.pending_handle.sequence},
            )

        event = session.append(kind, payload)
        self._forward(event)

        loop = asyncio.get_running_loop()
        handle = ResumeHandle(loop.create_future(), session.id, event.sequence, on_release=self._on_release)
        session.pending_handle = handle
        session.status = SessionStatus.SUSPENDED
        session.settled.set()
        logger.debug(f"Session {session.id[:8]} suspended at #{event.sequence}: {event.line}")

        await handle.wait()

    def _on_release(self, handle: ResumeHandle):
        session = self.session
        if session is None or session.pending_handle is not handle:
            return
        session.pending_handle = None
        session.status = SessionStatus.RUNNING
        session.settled.clear()

    def resume(self) -> bool:
        """Release the pending checkpoint. Returns False (and does nothing) if none is pending."""
        session = self.session
        if session is None or session.status is not SessionStatus.SUSPENDED:
            return False
        if session.pending_handle is None:
            return False
        return session.pending_handle.release()

    async def step(self) -> bool:
        """Resume once and wait for the next checkpoint or the end of the program."""
        if not self.resume():
            return False
        await self.session.wait_settled()
        return True

    def update_graph(self, session: ExecutionSession, new_graph: Any):
        """Replace the rendered graph without suspending; the session's graph is untouched."""
        if session.discarded or session is not self.session:
            return
        graph = new_graph if isinstance(new_graph, AdjacencyList) else AdjacencyList.from_rows(new_graph)
        self._call_render('update_graph_live', graph)

    # ------------------------------------------------------------------
    # render forwarding
    # ------------------------------------------------------------------

    def _forward(self, event: CheckpointEvent):
        if event.kind == CheckpointKind.HIGHLIGHT_NODE:
            self._call_render('highlight_node', event.payload['index'])
        elif event.kind == CheckpointKind.HIGHLIGHT_EDGE:
            self._call_render('highlight_edge', event.payload['source'], event.payload['target'])
        # every event, highlights included, also gets a console line
        self._call_render('append_log', event.line)

    def _call_render(self, method: str, *args):
        if self.render_sync is None:
            return
        try:
            getattr(self.render_sync, method)(*args)
        except Exception:
            logger.exception(f"Render sync {method} failed")

    def get_state(self) -> Dict[str, Any]:
        """Snapshot of the current session for the controller surface."""
        if self.session is None:
            return {'status': SessionStatus.NOT_STARTED.value, 'log': [], 'events': []}
        return self.session.to_dict()
