"""
Graph model for the stepper.

Parses the external graph notations accepted by the editor (an unweighted
adjacency list, or a pair of edge / weight lists) into one canonical
``AdjacencyList``, and converts it into cytoscape-style render elements.
"""

import copy
import json
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, NamedTuple, Optional, Sequence, Tuple, Union

from .exceptions import ParseError, ParseErrorKind


Number = Union[int, float]


class WeightedNeighbor(NamedTuple):
    """A weighted adjacency entry: ``(neighbor, weight)``."""
    neighbor: Number
    weight: Number


Entry = Union[Number, WeightedNeighbor]


def _is_number(value: Any) -> bool:
    # bool is an int subclass but JSON true/false are not numbers
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _reject_constant(name: str):
    raise ValueError(f"Unsupported JSON constant: {name}")


def _loads(text: str) -> Any:
    return json.loads(text, parse_constant=_reject_constant)


def format_number(value: Any) -> str:
    """Format a number the way the browser does (``1.0`` -> ``"1"``)."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


@dataclass(frozen=True)
class AdjacencyList:
    """Canonical graph: row ``i`` holds the outgoing entries of node ``i``."""
    rows: Tuple[Tuple[Entry, ...], ...] = ()
    weighted: bool = False

    @property
    def node_count(self) -> int:
        return len(self.rows)

    @property
    def edge_count(self) -> int:
        return sum(len(row) for row in self.rows)

    def neighbors(self, node: int) -> Tuple[Entry, ...]:
        return self.rows[node]

    def iter_edges(self) -> Iterator[Tuple[int, Number, Optional[Number]]]:
        """Yield ``(source, target, weight)`` in row order; weight is None when unweighted."""
        for source, row in enumerate(self.rows):
            for entry in row:
                if isinstance(entry, WeightedNeighbor):
                    yield source, entry.neighbor, entry.weight
                else:
                    yield source, entry, None

    def to_python(self) -> List[List[Any]]:
        """Plain nested lists as handed to user programs; weighted entries become ``[v, w]``."""
        result = []
        for row in self.rows:
            result.append([list(entry) if isinstance(entry, WeightedNeighbor) else entry
                           for entry in row])
        return result

    @classmethod
    def from_rows(cls, rows: Any) -> 'AdjacencyList':
        """Leniently coerce a program-supplied nested list.

        Numeric entries become plain edges, two-element numeric sequences become
        weighted pairs and anything else is skipped. A row that is not a
        sequence contributes a node with no edges.
        """
        if not isinstance(rows, (list, tuple)):
            raise ParseError(ParseErrorKind.MALFORMED_ADJACENCY,
                             f"Expected a list of rows, got {type(rows).__name__}")
        canonical = []
        weighted = False
        for row in rows:
            entries: List[Entry] = []
            if isinstance(row, (list, tuple)):
                for entry in row:
                    if _is_number(entry):
                        entries.append(entry)
                    elif (isinstance(entry, (list, tuple)) and len(entry) == 2
                          and _is_number(entry[0]) and _is_number(entry[1])):
                        entries.append(WeightedNeighbor(entry[0], entry[1]))
                        weighted = True
            canonical.append(tuple(entries))
        return cls(rows=tuple(canonical), weighted=weighted)


def parse_adjacency(text: str) -> AdjacencyList:
    """Parse an unweighted adjacency list such as ``[[1,2],[3],[],[]]``.

    Raises:
        ParseError: MALFORMED_ADJACENCY when the text is not JSON, is not a
            list of lists, or holds a non-numeric entry.
    """
    try:
        parsed = _loads(text)
    except (TypeError, ValueError) as e:
        raise ParseError(ParseErrorKind.MALFORMED_ADJACENCY,
                         "Invalid adjacency list format.", {'reason': str(e)})

    if not isinstance(parsed, list):
        raise ParseError(ParseErrorKind.MALFORMED_ADJACENCY,
                         "Invalid adjacency list format.",
                         {'reason': f"top level is {type(parsed).__name__}"})

    rows = []
    for index, row in enumerate(parsed):
        if not isinstance(row, list):
            raise ParseError(ParseErrorKind.MALFORMED_ADJACENCY,
                             "Invalid adjacency list format.", {'row': index})
        for entry in row:
            if not _is_number(entry):
                raise ParseError(ParseErrorKind.MALFORMED_ADJACENCY,
                                 "Invalid adjacency list format.",
                                 {'row': index, 'entry': repr(entry)})
        rows.append(tuple(row))

    return AdjacencyList(rows=tuple(rows), weighted=False)


def _as_index(value: Any) -> Optional[int]:
    if not _is_number(value):
        return None
    if isinstance(value, float):
        if not value.is_integer():
            return None
        value = int(value)
    if value < 0:
        return None
    return value


def parse_weighted_edges(edge_text: str, weight_text: str) -> AdjacencyList:
    """Build a weighted adjacency list from ``[[u,v],...]`` and ``[w,...]``.

    ``edges[i]`` is paired with ``weights[i]``. The node count is the largest
    endpoint plus one; entries are appended to their source row in input order.
    """
    try:
        edges = _loads(edge_text)
        weights = _loads(weight_text)
    except (TypeError, ValueError) as e:
        raise ParseError(ParseErrorKind.MALFORMED_EDGE,
                         "Invalid edge/weight list format.", {'reason': str(e)})

    if not isinstance(edges, list) or not isinstance(weights, list):
        raise ParseError(ParseErrorKind.MALFORMED_EDGE, "Invalid edge/weight list format.")

    pairs: List[Tuple[int, int]] = []
    for index, edge in enumerate(edges):
        if not isinstance(edge, list) or len(edge) != 2:
            raise ParseError(ParseErrorKind.MALFORMED_EDGE,
                             "Invalid edge/weight list format.", {'edge': index})
        source, target = _as_index(edge[0]), _as_index(edge[1])
        if source is None or target is None:
            raise ParseError(ParseErrorKind.MALFORMED_EDGE,
                             "Edge endpoints must be non-negative node indices.",
                             {'edge': index, 'value': edge})
        pairs.append((source, target))

    for index, weight in enumerate(weights):
        if not _is_number(weight):
            raise ParseError(ParseErrorKind.MALFORMED_EDGE,
                             "Invalid edge/weight list format.", {'weight': index})

    if len(pairs) != len(weights):
        raise ParseError(ParseErrorKind.LENGTH_MISMATCH,
                         "Invalid edge or weight data.",
                         {'edges': len(pairs), 'weights': len(weights)})
    if not pairs:
        raise ParseError(ParseErrorKind.EMPTY_INPUT, "Invalid edge or weight data.")

    node_count = max(max(source, target) for source, target in pairs) + 1
    adjacency: List[List[WeightedNeighbor]] = [[] for _ in range(node_count)]
    for (source, target), weight in zip(pairs, weights):
        adjacency[source].append(WeightedNeighbor(target, weight))

    return AdjacencyList(rows=tuple(tuple(row) for row in adjacency), weighted=True)


def serialize_adjacency(graph: AdjacencyList) -> str:
    """JSON text for a graph; ``parse_adjacency`` reads it back for unweighted graphs."""
    return json.dumps(graph.to_python())


def edge_id(source: Any, target: Any) -> str:
    return f"e{format_number(source)}-{format_number(target)}"


def to_render_elements(graph: AdjacencyList) -> Dict[str, List[Dict[str, Any]]]:
    """Convert a graph into cytoscape element dicts for the renderer."""
    nodes = [{'data': {'id': str(i), 'label': str(i)}} for i in range(graph.node_count)]
    edges = []
    for source, target, weight in graph.iter_edges():
        data = {
            'id': edge_id(source, target),
            'source': format_number(source),
            'target': format_number(target),
        }
        if weight is not None:
            data['label'] = format_number(weight)
        edges.append({'data': data})
    return {'nodes': nodes, 'edges': edges}


# Graphs offered in the editor's graph selector
PREDEFINED_GRAPHS: Dict[str, List[List[int]]] = {
    'empty': [],
    'rootOnly': [[]],
    'tree': [
        [1, 2],
        [3, 4],
        [],
        [],
        [],
    ],
    'graph': [
        [1, 3],     # 0 -> 1, 3
        [2, 4],     # 1 -> 2, 4
        [4],        # 2 -> 4
        [4, 5],     # 3 -> 4, 5
        [6],        # 4 -> 6
        [6],        # 5 -> 6
        [],         # 6
    ],
}

DEFAULT_CUSTOM_GRAPH = "[[1,2],[3],[4],[],[]]"
DEFAULT_EDGE_LIST = "[[0,1],[0,2],[1,2]]"
DEFAULT_WEIGHT_LIST = "[5,2,7]"


def select_predefined(key: str) -> AdjacencyList:
    """Return one of ``PREDEFINED_GRAPHS`` in canonical form (KeyError if unknown)."""
    rows: Sequence[Sequence[int]] = copy.deepcopy(PREDEFINED_GRAPHS[key])
    return AdjacencyList(rows=tuple(tuple(row) for row in rows), weighted=False)
