"""
Algo Stepper Core - step-synchronized narration of graph algorithms.

This package parses graph input into a canonical adjacency list, runs a user's
program as a cooperative task that pauses at every checkpoint, and releases
those checkpoints one at a time by manual stepping or timed auto-play.
"""

__version__ = "0.1.0"
__author__ = "Algo Stepper Development Team"

from .exceptions import (
    AlgoStepperError, ParseError, ParseErrorKind, CoordinatorInvariantViolation, ProgramLoadError
)
from .graph_model import (
    AdjacencyList, WeightedNeighbor, parse_adjacency, parse_weighted_edges,
    serialize_adjacency, to_render_elements, select_predefined, PREDEFINED_GRAPHS
)
from .models import (
    CheckpointEvent, CheckpointKind, ExecutionSession, ResumeHandle, SessionStatus,
    MAIN_RETURN_SENTINEL, EXCEPTION_SENTINEL
)
from .execution_visualizer import RenderSync, ExecutionVisualizer, RenderEvent, RenderEventType, format_console_line
from .execution_engine import (
    CheckpointCoordinator, Anim, Program, SourceProgram, CoroutineProgram, ProgramContext, DEFAULT_PROGRAM
)
from .step_controller import StepController, StepMode

__all__ = [
    # Errors
    "AlgoStepperError",
    "ParseError",
    "ParseErrorKind",
    "CoordinatorInvariantViolation",
    "ProgramLoadError",
    # Graph model
    "AdjacencyList",
    "WeightedNeighbor",
    "parse_adjacency",
    "parse_weighted_edges",
    "serialize_adjacency",
    "to_render_elements",
    "select_predefined",
    "PREDEFINED_GRAPHS",
    # Sessions and events
    "CheckpointEvent",
    "CheckpointKind",
    "ExecutionSession",
    "ResumeHandle",
    "SessionStatus",
    "MAIN_RETURN_SENTINEL",
    "EXCEPTION_SENTINEL",
    # Rendering
    "RenderSync",
    "ExecutionVisualizer",
    "RenderEvent",
    "RenderEventType",
    "format_console_line",
    # Execution
    "CheckpointCoordinator",
    "Anim",
    "Program",
    "SourceProgram",
    "CoroutineProgram",
    "ProgramContext",
    "DEFAULT_PROGRAM",
    "StepController",
    "StepMode",
]
