"""AI Agents package."""

from astra_ledger.agents.ai_agents import (
    AdvisorAgent,
    CandidateSchema,
    GeminiAgent,
    ParsingAgent,
    SummaryAgent,
    VisionAgent,
    build_memory_context,
    build_memory_map,
)

__all__ = [
    "AdvisorAgent",
    "CandidateSchema",
    "GeminiAgent",
    "ParsingAgent",
    "SummaryAgent",
    "VisionAgent",
    "build_memory_context",
    "build_memory_map",
]
