"""Default tool catalogue wiring the four specialist groups."""

from __future__ import annotations

from grant_agent.agent.registry import ToolRegistry
from grant_agent.tools.adaptation import build_adaptation_tools
from grant_agent.tools.common import ToolContext
from grant_agent.tools.creation import build_creation_tools
from grant_agent.tools.discovery import DiscoverySources, build_discovery_tools
from grant_agent.tools.http import HttpFetcher
from grant_agent.tools.validation import build_validation_tools


def build_default_registry(
    context: ToolContext,
    fetcher: HttpFetcher,
    *,
    sources: DiscoverySources | None = None,
) -> ToolRegistry:
    """Build the registry used by the orchestrator.

    Groups:
    - discovery (Explora): `searchOpportunities`, `compareGrants`.
    - validation (Ponder): `validateGrant`, `simulateEvaluation`.
    - creation (Inventa): concept, publication content, section drafts, reviews.
    - adaptation (Transcripto): adaptation, extraction, observations, reapplication.
    """
    return ToolRegistry(
        [
            *build_discovery_tools(context, fetcher, sources),
            *build_validation_tools(context),
            *build_creation_tools(context),
            *build_adaptation_tools(context),
        ]
    )
