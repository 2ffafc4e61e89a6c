"""Shared defaults for researchflow."""

RESEARCH_INITIATED = "research/initiated"
LEADS_REQUESTED = "research/generate-leads-requested"

TRIGGER_TOPIC = "research-runs"

DEFAULT_GEMINI_MODEL = "gemini-2.0-flash"
DEFAULT_GROQ_MODEL = "llama-3.3-70b-versatile"
DEEP_RESEARCH_AGENT = "deep-research-pro-preview-12-2025"

# Serper, Jina and the agent API all get their own request timeout.
DEFAULT_REQUEST_TIMEOUT = 30.0

MAX_PROGRESS = 100

BLOCKED_DOMAINS = (
    "facebook.com",
    "twitter.com",
    "x.com",
    "instagram.com",
    "linkedin.com",
    "youtube.com",
    "tiktok.com",
    "pinterest.com",
    "reddit.com",
)
