"""
Exceptions for the Algo Stepper core.
"""

from enum import Enum
from typing import Optional, Any, Dict


class AlgoStepperError(Exception):
    """Base exception for all stepper errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class ParseErrorKind(Enum):
    """Reasons a graph text can be rejected."""
    MALFORMED_ADJACENCY = "malformed_adjacency"
    MALFORMED_EDGE = "malformed_edge"
    LENGTH_MISMATCH = "length_mismatch"
    EMPTY_INPUT = "empty_input"


class ParseError(AlgoStepperError):
    """Raised when graph input text cannot be turned into an adjacency list."""

    def __init__(self, kind: ParseErrorKind, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.kind = kind

    def to_dict(self) -> Dict[str, Any]:
        return {'kind': self.kind.value, 'error': str(self), 'details': self.details}


class CoordinatorInvariantViolation(AlgoStepperError):
    """Raised when a checkpoint is registered while another one is still pending."""

    def __init__(self, message: str, session_id: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.session_id = session_id


class ProgramLoadError(AlgoStepperError):
    """Raised when user source does not define a usable program."""
    pass
