"""
Flask web interface for the Algo Stepper.

This provides a REST API for choosing a graph, starting a program, stepping
and auto-play, and pushes every render change to the browser over Socket.IO.
"""

import asyncio
import logging
import threading
from typing import Any, Callable, Dict, Optional

from flask import Flask, request, jsonify
from flask_cors import CORS
from flask_socketio import SocketIO, emit

from algo_stepper_core import config
from algo_stepper_core.exceptions import ParseError
from algo_stepper_core.execution_engine import CheckpointCoordinator, DEFAULT_PROGRAM
from algo_stepper_core.execution_visualizer import ExecutionVisualizer, RenderEvent
from algo_stepper_core.graph_model import (
    AdjacencyList, PREDEFINED_GRAPHS, DEFAULT_CUSTOM_GRAPH, DEFAULT_EDGE_LIST, DEFAULT_WEIGHT_LIST,
    parse_adjacency, parse_weighted_edges, select_predefined, to_render_elements,
)
from algo_stepper_core.step_controller import StepController

logger = logging.getLogger(__name__)


class StepperHost:
    """Owns the event loop the stepper runs on and the editor's current inputs.

    Flask handlers run on worker threads; every call into the coordinator or
    the step controller is marshalled onto the single loop thread.
    """

    def __init__(self, visualizer: Optional[ExecutionVisualizer] = None, timeout: Optional[float] = None):
        self.visualizer = visualizer or ExecutionVisualizer()
        self.timeout = timeout if timeout is not None else config.resolve_float('request_timeout')
        self.coordinator = CheckpointCoordinator(render_sync=self.visualizer)
        self.controller = StepController(self.coordinator)

        self.graph_key = 'graph'
        self.graph: AdjacencyList = select_predefined(self.graph_key)
        self.code = DEFAULT_PROGRAM
        self.custom_graph_text = DEFAULT_CUSTOM_GRAPH
        self.edge_list_text = DEFAULT_EDGE_LIST
        self.weight_list_text = DEFAULT_WEIGHT_LIST

        self.loop = asyncio.new_event_loop()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    # ─── loop thread ─────────────────────────────────────────────────

    def _run_loop(self):
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()

    def ensure_running(self):
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._thread = threading.Thread(target=self._run_loop, daemon=True, name='stepper-loop')
            self._thread.start()
            logger.info("Stepper loop thread started")

    def run(self, coro):
        """Run a coroutine on the loop thread and wait for its result."""
        self.ensure_running()
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        return future.result(timeout=self.timeout)

    def call(self, fn: Callable[..., Any], *args):
        """Run a plain function on the loop thread and wait for its result."""
        async def _invoke():
            return fn(*args)
        return self.run(_invoke())

    # ─── graph & code ────────────────────────────────────────────────

    def _replace_graph(self, key: str, graph: AdjacencyList):
        self.coordinator.teardown()
        self.graph_key = key
        self.graph = graph
        self.visualizer.load_graph(graph)
        self.visualizer.clear_console()

    def select_graph(self, key: str) -> AdjacencyList:
        if key == 'custom':
            graph = parse_adjacency(self.custom_graph_text)
        elif key == 'customWeighted':
            graph = parse_weighted_edges(self.edge_list_text, self.weight_list_text)
        else:
            graph = select_predefined(key)
        self.call(self._replace_graph, key, graph)
        return graph

    def set_custom_graph(self, text: str) -> AdjacencyList:
        self.custom_graph_text = text
        graph = parse_adjacency(text)
        self.call(self._replace_graph, 'custom', graph)
        return graph

    def set_weighted_graph(self, edge_text: str, weight_text: str) -> AdjacencyList:
        self.edge_list_text = edge_text
        self.weight_list_text = weight_text
        graph = parse_weighted_edges(edge_text, weight_text)
        self.call(self._replace_graph, 'customWeighted', graph)
        return graph

    def set_code(self, code: str):
        self.code = code
        self.call(self.coordinator.teardown)

    # ─── session ─────────────────────────────────────────────────────

    def start_session(self, code: Optional[str] = None) -> Dict[str, Any]:
        if code is not None:
            self.code = code
        self.run(self.coordinator.start(self.code, self.graph))
        return self.state()

    def step(self) -> bool:
        return self.run(self.controller.step())

    def toggle_auto_play(self, playing: Optional[bool] = None) -> bool:
        if playing is None:
            return self.call(self.controller.toggle_auto_play)
        if playing:
            return self.call(self.controller.play)
        self.call(self.controller.pause)
        return False

    def set_interval(self, interval_ms: int) -> int:
        return self.call(self.controller.set_interval, interval_ms)

    def _snapshot(self) -> Dict[str, Any]:
        return {
            'session': self.coordinator.get_state(),
            'controller': self.controller.get_state(),
            'render': self.visualizer.get_render_state(),
        }

    def state(self) -> Dict[str, Any]:
        return self.call(self._snapshot)


app = Flask(__name__)
app.config['SECRET_KEY'] = 'algo-stepper-secret-key'
CORS(app)
socketio = SocketIO(app, cors_allowed_origins="*", async_mode='threading')

host = StepperHost()


def _broadcast_render_event(event: RenderEvent):
    socketio.emit('render_event', event.to_dict())


host.visualizer.add_event_callback(_broadcast_render_event)


def _parse_error_response(e: ParseError):
    return jsonify({
        'success': False,
        'error': str(e),
        'kind': e.kind.value,
        'details': e.details,
    }), 400


# Graph API endpoints
@app.route('/api/graphs', methods=['GET'])
def list_graphs():
    """List the graph choices offered by the selector."""
    return jsonify({
        'success': True,
        'data': {
            'graphs': list(PREDEFINED_GRAPHS.keys()) + ['custom', 'customWeighted'],
            'current': host.graph_key,
        }
    })


@app.route('/api/graph', methods=['GET'])
def get_graph():
    """Get the current canonical graph and its render elements."""
    try:
        return jsonify({
            'success': True,
            'data': {
                'key': host.graph_key,
                'adjacency': host.graph.to_python(),
                'weighted': host.graph.weighted,
                'elements': to_render_elements(host.graph),
            }
        })
    except Exception as e:
        return jsonify({'success': False, 'error': str(e)}), 500


@app.route('/api/graph/select', methods=['POST'])
def select_graph():
    """Switch to a predefined graph, or re-apply the custom inputs."""
    data = request.get_json(silent=True) or {}
    key = data.get('key', '')
    try:
        graph = host.select_graph(key)
        return jsonify({'success': True, 'data': {'key': key, 'adjacency': graph.to_python()}})
    except KeyError:
        return jsonify({'success': False, 'error': f'Unknown graph: {key}'}), 404
    except ParseError as e:
        return _parse_error_response(e)
    except Exception as e:
        return jsonify({'success': False, 'error': str(e)}), 500


@app.route('/api/graph/custom', methods=['POST'])
def set_custom_graph():
    """Set a custom unweighted adjacency list. Body: ``{ "text": "[[1,2],[3],[]]" }``"""
    data = request.get_json(silent=True) or {}
    try:
        graph = host.set_custom_graph(data.get('text', ''))
        return jsonify({'success': True, 'data': {'key': 'custom', 'adjacency': graph.to_python()}})
    except ParseError as e:
        return _parse_error_response(e)
    except Exception as e:
        return jsonify({'success': False, 'error': str(e)}), 500


@app.route('/api/graph/weighted', methods=['POST'])
def set_weighted_graph():
    """Set a weighted graph. Body: ``{ "edges": "[[0,1]]", "weights": "[5]" }``"""
    data = request.get_json(silent=True) or {}
    try:
        graph = host.set_weighted_graph(data.get('edges', ''), data.get('weights', ''))
        return jsonify({'success': True, 'data': {'key': 'customWeighted', 'adjacency': graph.to_python()}})
    except ParseError as e:
        return _parse_error_response(e)
    except Exception as e:
        return jsonify({'success': False, 'error': str(e)}), 500


# Program API endpoints
@app.route('/api/code', methods=['GET'])
def get_code():
    return jsonify({'success': True, 'data': {'code': host.code}})


@app.route('/api/code', methods=['PUT'])
def set_code():
    """Replace the program text; any running session is discarded."""
    data = request.get_json(silent=True) or {}
    code = data.get('code')
    if code is None:
        return jsonify({'success': False, 'error': 'Missing "code" field'}), 400
    try:
        host.set_code(code)
        return jsonify({'success': True})
    except Exception as e:
        return jsonify({'success': False, 'error': str(e)}), 500


# Session API endpoints
@app.route('/api/session', methods=['GET'])
def get_session():
    """Get the session log, status, and controller state."""
    try:
        return jsonify({'success': True, 'data': host.state()})
    except Exception as e:
        return jsonify({'success': False, 'error': str(e)}), 500


@app.route('/api/session/start', methods=['POST'])
def start_session():
    """Run the program from the beginning. Body (optional): ``{ "code": "..." }``"""
    data = request.get_json(silent=True) or {}
    try:
        return jsonify({'success': True, 'data': host.start_session(data.get('code'))})
    except Exception as e:
        logger.exception("Failed to start session")
        return jsonify({'success': False, 'error': str(e)}), 500


@app.route('/api/session/step', methods=['POST'])
def step_session():
    """Release one checkpoint."""
    try:
        advanced = host.step()
        return jsonify({'success': True, 'data': {'advanced': advanced, **host.state()}})
    except Exception as e:
        return jsonify({'success': False, 'error': str(e)}), 500


@app.route('/api/session/autoplay', methods=['POST'])
def toggle_auto_play():
    """Toggle auto-play. Body (optional): ``{ "playing": true }`` to set it explicitly."""
    data = request.get_json(silent=True) or {}
    try:
        playing = host.toggle_auto_play(data.get('playing'))
        return jsonify({'success': True, 'data': {'playing': playing}})
    except Exception as e:
        return jsonify({'success': False, 'error': str(e)}), 500


@app.route('/api/session/interval', methods=['PUT'])
def set_interval():
    """Set the auto-play interval. Body: ``{ "interval_ms": 800 }``"""
    data = request.get_json(silent=True) or {}
    try:
        interval_ms = int(data.get('interval_ms'))
    except (TypeError, ValueError):
        return jsonify({'success': False, 'error': 'Missing or invalid "interval_ms" field'}), 400
    try:
        return jsonify({'success': True, 'data': {'interval_ms': host.set_interval(interval_ms)}})
    except Exception as e:
        return jsonify({'success': False, 'error': str(e)}), 500


@app.route('/api/settings', methods=['GET'])
def settings_list():
    """Return all known settings with their effective values and sources."""
    return jsonify({'success': True, 'settings': config.describe_settings()})


# WebSocket events
@socketio.on('connect')
def handle_connect():
    """Send the current view to a newly connected client."""
    sid = request.sid  # type: ignore[attr-defined]
    emit('render_state', host.state())
    logger.info(f"Client connected: {sid}")


@socketio.on('disconnect')
def handle_disconnect(reason=None):
    sid = request.sid  # type: ignore[attr-defined]
    logger.info(f"Client disconnected: {sid}")


def main():
    logging.basicConfig(
        level=config.resolve_setting('log_level').upper(),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
    bind = config.resolve_setting('host')
    port = config.resolve_int('port')
    host.ensure_running()
    host.call(host.visualizer.load_graph, host.graph)

    print(f"Access the interface at: http://localhost:{port}")
    socketio.run(app, host=bind, port=port, use_reloader=False, allow_unsafe_werkzeug=True)


if __name__ == '__main__':
    main()
