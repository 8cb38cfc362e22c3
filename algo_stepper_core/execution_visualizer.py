"""
Render synchronization for live visual feedback while a program steps.

``RenderSync`` is what the coordinator talks to. ``ExecutionVisualizer`` is
the in-process implementation: it mirrors the renderer's element set and
highlight state, keeps the display console, and fans every change out to
registered callbacks (the web layer forwards them over Socket.IO).
"""

import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .graph_model import AdjacencyList, edge_id, to_render_elements, format_number

logger = logging.getLogger(__name__)


def format_console_line(message: str) -> str:
    """Pretty-print a console line that holds a JSON object or array.

    Anything else, sentinel lines included, is displayed unchanged.
    """
    try:
        parsed = json.loads(message)
    except (TypeError, ValueError):
        return message
    if isinstance(parsed, (dict, list)):
        return json.dumps(parsed, separators=(', ', ': '))
    return message


class RenderSync(ABC):
    """Interface the coordinator drives to keep the picture in step with the program."""

    @abstractmethod
    def highlight_node(self, index: Any):
        """Highlight a single node, clearing previous highlights."""

    @abstractmethod
    def highlight_edge(self, source: Any, target: Any):
        """Highlight the edge ``source-target``, falling back to ``target-source``."""

    @abstractmethod
    def update_graph_live(self, graph: AdjacencyList):
        """Replace the whole rendered graph."""

    @abstractmethod
    def append_log(self, line: str):
        """Append a line to the console."""

    def load_graph(self, graph: AdjacencyList):
        self.update_graph_live(graph)

    def clear_highlights(self):
        pass

    def clear_console(self):
        pass


class RenderEventType(Enum):
    """Types of render events pushed to the frontend."""
    GRAPH_LOADED = "graph_loaded"
    GRAPH_UPDATED = "graph_updated"
    HIGHLIGHT_NODE = "highlight_node"
    HIGHLIGHT_EDGE = "highlight_edge"
    HIGHLIGHTS_CLEARED = "highlights_cleared"
    CONSOLE_LINE = "console_line"
    CONSOLE_CLEARED = "console_cleared"


@dataclass
class RenderEvent:
    """A change to the rendered view."""
    event_type: RenderEventType
    timestamp: float
    data: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'event_type': self.event_type.value,
            'timestamp': self.timestamp,
            'data': self.data,
        }


class ExecutionVisualizer(RenderSync):
    """Keeps render state and console output, and broadcasts every change."""

    def __init__(self, max_history: int = 1000):
        self.events: List[RenderEvent] = []
        self.event_callbacks: List[Callable[[RenderEvent], None]] = []
        self.max_history = max_history
        self.node_ids: List[str] = []
        self.edges: Dict[str, Dict[str, Any]] = {}
        self.highlighted_node: Optional[str] = None
        self.highlighted_edge: Optional[str] = None
        self.console_lines: List[str] = []

    def add_event_callback(self, callback: Callable[[RenderEvent], None]):
        """Add a callback to be called when render events occur."""
        self.event_callbacks.append(callback)

    def remove_event_callback(self, callback: Callable[[RenderEvent], None]):
        if callback in self.event_callbacks:
            self.event_callbacks.remove(callback)

    def emit_event(self, event_type: RenderEventType, data: Optional[Dict[str, Any]] = None) -> RenderEvent:
        event = RenderEvent(event_type=event_type, timestamp=time.time(), data=data)
        self.events.append(event)
        if len(self.events) > self.max_history:
            self.events.pop(0)

        for callback in self.event_callbacks:
            try:
                callback(event)
            except Exception:
                logger.exception(f"Render callback failed for {event_type.value}")
        return event

    # ------------------------------------------------------------------
    # graph
    # ------------------------------------------------------------------

    def _set_elements(self, graph: AdjacencyList) -> Dict[str, List[Dict[str, Any]]]:
        elements = to_render_elements(graph)
        self.node_ids = [node['data']['id'] for node in elements['nodes']]
        self.edges = {edge['data']['id']: edge['data'] for edge in elements['edges']}
        self.highlighted_node = None
        self.highlighted_edge = None
        return elements

    def load_graph(self, graph: AdjacencyList):
        """Show a freshly selected graph."""
        elements = self._set_elements(graph)
        self.emit_event(RenderEventType.GRAPH_LOADED, {'elements': elements, 'weighted': graph.weighted})

    def update_graph_live(self, graph: AdjacencyList):
        """Replace the rendered graph while a program runs."""
        elements = self._set_elements(graph)
        logger.debug(f"Live graph update: {graph.node_count} nodes, {graph.edge_count} edges")
        self.emit_event(RenderEventType.GRAPH_UPDATED, {'elements': elements, 'weighted': graph.weighted})

    # ------------------------------------------------------------------
    # highlights
    # ------------------------------------------------------------------

    def clear_highlights(self):
        self.highlighted_node = None
        self.highlighted_edge = None
        self.emit_event(RenderEventType.HIGHLIGHTS_CLEARED)

    def find_edge(self, source: Any, target: Any) -> Optional[str]:
        """Return the id of ``source-target``, else of ``target-source``, else None."""
        forward, reverse = edge_id(source, target), edge_id(target, source)
        if forward in self.edges:
            return forward
        if reverse in self.edges:
            return reverse
        return None

    def highlight_node(self, index: Any):
        self.highlighted_node = None
        self.highlighted_edge = None
        node_id = format_number(index)
        found = node_id in self.node_ids
        if found:
            self.highlighted_node = node_id
        self.emit_event(RenderEventType.HIGHLIGHT_NODE, {'node_id': node_id, 'found': found})

    def highlight_edge(self, source: Any, target: Any):
        self.highlighted_node = None
        self.highlighted_edge = self.find_edge(source, target)
        self.emit_event(RenderEventType.HIGHLIGHT_EDGE, {
            'edge_id': self.highlighted_edge,
            'source': str(source),
            'target': str(target),
            'found': self.highlighted_edge is not None,
        })

    # ------------------------------------------------------------------
    # console
    # ------------------------------------------------------------------

    def append_log(self, line: str):
        display = format_console_line(line)
        self.console_lines.append(display)
        self.emit_event(RenderEventType.CONSOLE_LINE, {'line': display, 'raw': line})

    def clear_console(self):
        self.console_lines.clear()
        self.emit_event(RenderEventType.CONSOLE_CLEARED)

    def get_render_state(self) -> Dict[str, Any]:
        """Current view for clients that join mid-run."""
        return {
            'nodes': list(self.node_ids),
            'edges': list(self.edges.values()),
            'highlighted_node': self.highlighted_node,
            'highlighted_edge': self.highlighted_edge,
            'console': list(self.console_lines),
        }

    def get_recent_events(self, count: int = 10) -> List[RenderEvent]:
        """Get the most recent render events."""
        return self.events[-count:] if self.events else []
