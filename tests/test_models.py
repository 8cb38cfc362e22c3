"""
Unit tests for session and checkpoint data models.
"""

import asyncio

import pytest

from algo_stepper_core.graph_model import parse_adjacency
from algo_stepper_core.models import (
    CheckpointEvent, CheckpointKind, ExecutionSession, ResumeHandle, SessionStatus,
    MAIN_RETURN_SENTINEL, EXCEPTION_SENTINEL,
)


class TestSessionStatus:
    """Test cases for SessionStatus."""

    def test_terminal_states(self):
        assert SessionStatus.FINISHED.is_terminal is True
        assert SessionStatus.FAILED.is_terminal is True
        assert SessionStatus.RUNNING.is_terminal is False
        assert SessionStatus.SUSPENDED.is_terminal is False
        assert SessionStatus.NOT_STARTED.is_terminal is False


class TestCheckpointEvent:
    """Test cases for CheckpointEvent."""

    def test_highlight_node_line(self):
        event = CheckpointEvent(CheckpointKind.HIGHLIGHT_NODE, {'index': 3})
        assert event.line == "Highlight node 3"

    def test_highlight_edge_line(self):
        event = CheckpointEvent(CheckpointKind.HIGHLIGHT_EDGE, {'source': 0, 'target': 1})
        assert event.line == "Highlight edge 0-1"

    def test_log_line(self):
        event = CheckpointEvent(CheckpointKind.LOG, {'message': "visiting 4"})
        assert event.line == "visiting 4"

    def test_event_is_immutable(self):
        event = CheckpointEvent(CheckpointKind.LOG, {'message': "x"})
        with pytest.raises(Exception):
            event.sequence = 5

    def test_to_dict_stringifies_unusual_payloads(self):
        """Test that payload values JSON cannot carry are converted to strings."""
        event = CheckpointEvent(CheckpointKind.HIGHLIGHT_NODE, {'index': (1, 2)}, sequence=2)
        data = event.to_dict()
        assert data['kind'] == 'highlight_node'
        assert data['payload'] == {'index': '(1, 2)'}
        assert data['sequence'] == 2
        assert data['line'] == "Highlight node (1, 2)"

    def test_integral_float_indices_formatted_like_integers(self):
        """Test that 1.0 is logged as node 1, matching the highlighted element id."""
        node = CheckpointEvent(CheckpointKind.HIGHLIGHT_NODE, {'index': 1.0})
        edge = CheckpointEvent(CheckpointKind.HIGHLIGHT_EDGE, {'source': 0.0, 'target': 2.5})
        assert node.line == "Highlight node 1"
        assert edge.line == "Highlight edge 0-2.5"

    def test_sentinels(self):
        assert MAIN_RETURN_SENTINEL == "__MAIN_RETURN__:"
        assert EXCEPTION_SENTINEL == "__EXCEPTION__:"


class TestExecutionSession:
    """Test cases for ExecutionSession."""

    def test_session_defaults(self):
        session = ExecutionSession(source="", graph=parse_adjacency("[[1],[]]"))
        assert session.status == SessionStatus.NOT_STARTED
        assert session.events == []
        assert session.pending_handle is None
        assert session.has_pending_checkpoint is False
        assert len(session.id) == 36

    def test_append_assigns_sequence(self):
        session = ExecutionSession(source="", graph=parse_adjacency("[]"))
        first = session.append(CheckpointKind.HIGHLIGHT_NODE, {'index': 0})
        second = session.append(CheckpointKind.LOG, {'message': 'done'}, terminal=True)
        assert (first.sequence, second.sequence) == (0, 1)
        assert second.terminal is True
        assert session.log_lines() == ["Highlight node 0", "done"]

    def test_to_dict(self):
        session = ExecutionSession(source="x = 1", graph=parse_adjacency("[[1],[]]"))
        session.append(CheckpointKind.LOG, {'message': 'hi'})
        data = session.to_dict()
        assert data['status'] == 'not_started'
        assert data['log'] == ['hi']
        assert data['node_count'] == 2
        assert data['pending_checkpoint'] is False


class TestResumeHandle:
    """Test cases for ResumeHandle."""

    def test_release_once(self):
        async def scenario():
            released = []
            handle = ResumeHandle(asyncio.get_running_loop().create_future(), 'session', 0,
                                  on_release=released.append)
            assert handle.pending is True
            assert handle.release() is True
            assert handle.release() is False
            await handle.wait()
            return handle, released

        handle, released = asyncio.run(scenario())
        assert handle.pending is False
        assert released == [handle]

    def test_release_after_cancel_is_ignored(self):
        async def scenario():
            released = []
            handle = ResumeHandle(asyncio.get_running_loop().create_future(), 'session', 0,
                                  on_release=released.append)
            handle.cancel()
            return handle.release(), handle.cancelled, released

        result, cancelled, released = asyncio.run(scenario())
        assert result is False
        assert cancelled is True
        assert released == []
