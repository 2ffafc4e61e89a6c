"""researchflow: durable, resumable research pipelines."""

from .contracts import ResearchRequest, RetryOptions, TriggerEvent
from .dispatch import TriggerDispatcher
from .orchestrator import ResearchOrchestrator
from .persistence import get_store
from .transports import get_transport
from .worker import RunWorker

__version__ = "0.1.0"
__all__ = [
    "ResearchOrchestrator",
    "ResearchRequest",
    "RetryOptions",
    "RunWorker",
    "TriggerDispatcher",
    "TriggerEvent",
    "get_store",
    "get_transport",
]
