"""Research pipeline stages and their ordering."""

from .context import SettingsLoader, StageContext, step_name
from .definition import LEADS_PIPELINE, RESEARCH_PIPELINE, PipelineDefinition, Stage
from .discovery import (
    AutonomousDiscoverer,
    IterativeDiscoverer,
    ReuseDiscoverer,
    StandardDiscoverer,
    agent_job_sources,
    select_discoverer,
)

__all__ = [
    "SettingsLoader",
    "StageContext",
    "step_name",
    "LEADS_PIPELINE",
    "RESEARCH_PIPELINE",
    "PipelineDefinition",
    "Stage",
    "AutonomousDiscoverer",
    "IterativeDiscoverer",
    "ReuseDiscoverer",
    "StandardDiscoverer",
    "agent_job_sources",
    "select_discoverer",
]
