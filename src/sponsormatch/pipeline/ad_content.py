# src/sponsormatch/pipeline/ad_content.py
from __future__ import annotations

from typing import Optional, Protocol

from sponsormatch.pipeline.knowledge_base import KnowledgeBase
from sponsormatch.pipeline.models import AdContent, EnhancedMatch


class AdContentResolver(Protocol):
    async def resolve(self, match: EnhancedMatch) -> Optional[AdContent]:
        ...


class StaticAdContentResolver:
    """Serves the creatives bundled with the knowledge base, one per treatment area."""

    def __init__(self, knowledge_base: KnowledgeBase) -> None:
        self.knowledge_base = knowledge_base

    async def resolve(self, match: EnhancedMatch) -> Optional[AdContent]:
        return self.knowledge_base.creative_for(match.match.treatment_area.id)
