"""
Routers Package.

This package contains the traffic splitter, the dispatcher that turns a
request into a response with timeout and fallback, and the multi-shot runner.
"""

from .experiment_tracker import ExperimentTracker
from .dispatcher import Dispatcher, DispatchOptions, estimate_tokens
from .multishot import MultiShotRunner, MultiShotResult

__all__ = [
    "ExperimentTracker",
    "Dispatcher",
    "DispatchOptions",
    "estimate_tokens",
    "MultiShotRunner",
    "MultiShotResult"
]
