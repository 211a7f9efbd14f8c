"""Context aggregator - keyword indexes and ranked search over fleet capabilities.

The working snapshot is replaced wholesale on every update and the three
indexes are rebuilt from scratch, so readers never observe a half-updated
index.
"""

from collections.abc import Iterable
import re
import threading

from ..domain.events import ContextUpdated, DomainEvent
from ..domain.model import (
    CapabilityItem,
    CapabilityType,
    ContextMatch,
    ContextQuery,
    ContextSummary,
    FleetContextSnapshot,
    Prompt,
    Resource,
    Tool,
)
from ..logging_config import get_logger

logger = get_logger(__name__)

STOP_WORDS = frozenset(
    {
        "the", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by",
        "from", "up", "about", "into", "through", "during", "before", "after",
        "above", "below", "between", "among", "this", "that", "these", "those",
    }
)  # fmt: skip

MIN_KEYWORD_LENGTH = 3

_SPLIT_RE = re.compile(r"[\s\-_./:\\]+")

# Scoring weights
EXACT_NAME_SCORE = 100
NAME_CONTAINS_SCORE = 50
DESCRIPTION_SCORE = 20
URI_SCORE = 10
SHORT_NAME_BONUS = 5
SHORT_NAME_LENGTH = 20


def extract_keywords(*texts: str | None) -> list[str]:
    """Lower-cased, de-duplicated index tokens, in first-seen order."""
    text = " ".join(t for t in texts if t).lower()
    keywords = []
    for word in _SPLIT_RE.split(text):
        if len(word) >= MIN_KEYWORD_LENGTH and word not in STOP_WORDS and word not in keywords:
            keywords.append(word)
    return keywords


def relevance_score(keyword: str, name: str, description: str | None = None, uri: str | None = None) -> int:
    keyword = keyword.lower()
    lower_name = name.lower()

    score = 0
    if lower_name == keyword:
        score += EXACT_NAME_SCORE
    elif keyword in lower_name:
        score += NAME_CONTAINS_SCORE
    if description and keyword in description.lower():
        score += DESCRIPTION_SCORE
    if uri and keyword in uri.lower():
        score += URI_SCORE
    if len(name) < SHORT_NAME_LENGTH:
        score += SHORT_NAME_BONUS
    return score


def _build_index(items: Iterable[CapabilityItem], fields) -> dict[str, list[CapabilityItem]]:
    index: dict[str, list[CapabilityItem]] = {}
    for item in items:
        for keyword in extract_keywords(*fields(item)):
            index.setdefault(keyword, []).append(item)
    return index


def _tool_fields(tool: Tool) -> tuple[str | None, ...]:
    return (tool.name, tool.description)


def _resource_fields(resource: Resource) -> tuple[str | None, ...]:
    return (resource.name, resource.description, resource.uri)


def _prompt_fields(prompt: Prompt) -> tuple[str | None, ...]:
    return (prompt.name, prompt.description)


class ContextAggregator:
    """Indexes the latest fleet snapshot and answers ranked keyword searches."""

    def __init__(self):
        self._snapshot = FleetContextSnapshot.empty()
        self._indexes: dict[CapabilityType, dict[str, list[CapabilityItem]]] = {
            CapabilityType.TOOL: {},
            CapabilityType.RESOURCE: {},
            CapabilityType.PROMPT: {},
        }
        self._lock = threading.Lock()

    def handle(self, event: DomainEvent) -> None:
        """Event bus entry point."""
        if isinstance(event, ContextUpdated):
            self.update_context(event.snapshot)

    def update_context(self, snapshot: FleetContextSnapshot) -> None:
        indexes = {
            CapabilityType.TOOL: _build_index(snapshot.tools, _tool_fields),
            CapabilityType.RESOURCE: _build_index(snapshot.resources, _resource_fields),
            CapabilityType.PROMPT: _build_index(snapshot.prompts, _prompt_fields),
        }
        with self._lock:
            self._snapshot = snapshot
            self._indexes = indexes

        logger.debug(
            "context_indexes_rebuilt",
            tools=len(snapshot.tools),
            resources=len(snapshot.resources),
            prompts=len(snapshot.prompts),
            keywords=sum(len(i) for i in indexes.values()),
        )

    # --- Search ---

    def search(self, query: ContextQuery) -> list[ContextMatch]:
        """
        Rank indexed items against the query's keywords.

        Each (type, provider, identity) appears once, with its best score.
        Results are sorted by descending score; ties keep index order.
        """
        keywords = extract_keywords(query.query)
        if query.type == CapabilityType.ANY:
            types = [CapabilityType.TOOL, CapabilityType.RESOURCE, CapabilityType.PROMPT]
        else:
            types = [query.type]

        with self._lock:
            indexes = self._indexes

        best: dict[tuple, ContextMatch] = {}
        for capability_type in types:
            index = indexes[capability_type]
            for keyword in keywords:
                for item in index.get(keyword, ()):
                    if query.provider_id and item.provider_id != query.provider_id:
                        continue
                    score = self._score(keyword, item)
                    key = (capability_type, item.provider_id, item.key[0])
                    current = best.get(key)
                    if current is None or score > current.relevance_score:
                        best[key] = ContextMatch(
                            type=capability_type,
                            item=item,
                            relevance_score=score,
                            provider_id=item.provider_id,
                        )

        matches = sorted(best.values(), key=lambda m: m.relevance_score, reverse=True)
        return matches[: query.limit] if query.limit else matches

    @staticmethod
    def _score(keyword: str, item: CapabilityItem) -> int:
        if isinstance(item, Resource):
            return relevance_score(keyword, item.name, item.description, item.uri)
        return relevance_score(keyword, item.name, item.description)

    # --- Derived views ---

    def get_context(self) -> FleetContextSnapshot:
        with self._lock:
            return self._snapshot

    def get_tools_by_provider(self, provider_id: str) -> list[Tool]:
        return [t for t in self.get_context().tools if t.provider_id == provider_id]

    def get_resources_by_provider(self, provider_id: str) -> list[Resource]:
        return [r for r in self.get_context().resources if r.provider_id == provider_id]

    def get_prompts_by_provider(self, provider_id: str) -> list[Prompt]:
        return [p for p in self.get_context().prompts if p.provider_id == provider_id]

    def get_available_tools(self) -> list[Tool]:
        snapshot = self.get_context()
        running = snapshot.running_provider_ids()
        return [t for t in snapshot.tools if t.provider_id in running]

    def get_available_resources(self) -> list[Resource]:
        snapshot = self.get_context()
        running = snapshot.running_provider_ids()
        return [r for r in snapshot.resources if r.provider_id in running]

    def get_available_prompts(self) -> list[Prompt]:
        snapshot = self.get_context()
        running = snapshot.running_provider_ids()
        return [p for p in snapshot.prompts if p.provider_id in running]

    def get_context_summary(self) -> ContextSummary:
        snapshot = self.get_context()
        running = snapshot.running_provider_ids()
        return ContextSummary(
            total_tools=len(snapshot.tools),
            available_tools=sum(1 for t in snapshot.tools if t.provider_id in running),
            total_resources=len(snapshot.resources),
            available_resources=sum(1 for r in snapshot.resources if r.provider_id in running),
            total_prompts=len(snapshot.prompts),
            available_prompts=sum(1 for p in snapshot.prompts if p.provider_id in running),
            connected_servers=len(running),
            total_servers=len(snapshot.statuses),
        )
