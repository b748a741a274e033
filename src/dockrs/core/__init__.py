"""
CLI Core Package
Engine client, resolution, batch execution and streaming
"""

from .errors import (
    ErrorKind,
    EngineError,
    NotFound,
    Ambiguous,
    Conflict,
    DaemonUnreachable,
    PermissionDenied,
    Cancelled,
    Unknown,
    EmptyBatch
)
from .models import (
    ResourceKind,
    ResourceHandle,
    ResourceDescriptor,
    Candidate,
    BatchOutcome,
    StreamEvent,
    sort_outcomes
)
from .config import Settings, load_settings, config_path
from .engine import EngineClient
from .docker_ops import DockerEngineClient, translate_error
from .resolver import Resolver, match
from .batch import BatchExecutor
from .streamer import StreamMerger, stream_logs, stream_stats, stream_events

__all__ = [
    # Errors
    'ErrorKind',
    'EngineError',
    'NotFound',
    'Ambiguous',
    'Conflict',
    'DaemonUnreachable',
    'PermissionDenied',
    'Cancelled',
    'Unknown',
    'EmptyBatch',

    # Model
    'ResourceKind',
    'ResourceHandle',
    'ResourceDescriptor',
    'Candidate',
    'BatchOutcome',
    'StreamEvent',
    'sort_outcomes',

    # Configuration
    'Settings',
    'load_settings',
    'config_path',

    # Engine
    'EngineClient',
    'DockerEngineClient',
    'translate_error',

    # Operations
    'Resolver',
    'match',
    'BatchExecutor',
    'StreamMerger',
    'stream_logs',
    'stream_stats',
    'stream_events'
]
