"""Trigger and payload contracts for research runs."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, Field, field_validator

from .config import LLMProvider
from .constants import LEADS_REQUESTED, RESEARCH_INITIATED


class StandardDiscovery(BaseModel):
    """One search, then extraction of every result."""

    kind: Literal["standard"] = "standard"
    search_limit: Optional[int] = None


class IterativeDiscovery(BaseModel):
    """Search/extract rounds steered by gap analysis, then a synthesis."""

    kind: Literal["iterative"] = "iterative"
    max_iterations: Optional[int] = None
    results_per_iteration: Optional[int] = None


class AutonomousDiscovery(BaseModel):
    """A remote agent researches on its own while the run polls it."""

    kind: Literal["autonomous"] = "autonomous"
    interval_seconds: Optional[float] = None
    max_attempts: Optional[int] = None


DiscoveryStrategy = Annotated[
    Union[StandardDiscovery, IterativeDiscovery, AutonomousDiscovery],
    Field(discriminator="kind"),
]


class ResearchRequest(BaseModel):
    """Payload of a research trigger."""

    prompt: str
    user_id: Optional[str] = None
    scope: Literal["general", "lead_generation"] = "general"
    strategy: DiscoveryStrategy = Field(default_factory=StandardDiscovery)

    @property
    def wants_leads(self) -> bool:
        return self.scope == "lead_generation"


class LeadsRequest(BaseModel):
    """Payload of a lead-generation trigger for a finished research run."""

    source_run_id: str
    user_id: Optional[str] = None


class RetryOptions(BaseModel):
    """Options carried by a retry trigger."""

    skip_discovery: bool = Field(
        default=False, validation_alias=AliasChoices("skip_discovery", "skipSearch")
    )
    provider: Optional[LLMProvider] = None
    model: Optional[str] = None

    @field_validator("provider", mode="before")
    @classmethod
    def _lower_provider(cls, value: Any) -> Any:
        return value.lower() if isinstance(value, str) else value


class TriggerEvent(BaseModel):
    """Envelope that starts or resumes a run."""

    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: Literal["research/initiated", "research/generate-leads-requested"] = (
        RESEARCH_INITIATED
    )
    run_id: str
    job_id: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    retry_options: Optional[RetryOptions] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_leads_request(self) -> bool:
        return self.name == LEADS_REQUESTED

    def research_request(self) -> ResearchRequest:
        return ResearchRequest.model_validate(self.payload)

    def leads_request(self) -> LeadsRequest:
        return LeadsRequest.model_validate(self.payload)

    def to_json(self) -> str:
        """Serialize event to JSON."""
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str) -> "TriggerEvent":
        """Deserialize event from JSON."""
        return cls.model_validate_json(data)
