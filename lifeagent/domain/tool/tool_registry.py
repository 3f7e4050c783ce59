import re
import threading
from typing import Dict, Iterable, List, Optional

import structlog
from langchain_core.tools import BaseTool

from lifeagent.domain.tool.types import (
    CATEGORY_DESCRIPTIONS,
    RegisteredTool,
    ToolEntry,
    ToolMetadata,
    ToolQueryFilter,
    ToolRegistrationOptions,
    category_key,
    category_priority,
)

logger = structlog.get_logger(__name__)


class ToolRegistry:
    """Catalog of callable tools and their metadata.

    One instance is built at startup and handed to the orchestrator and
    route handlers. Writers replace the underlying mapping in one
    assignment, so readers always see either the old or the new catalog.
    """

    def __init__(self):
        self._tools: Dict[str, RegisteredTool] = {}
        self._write_lock = threading.Lock()

    def register(
        self,
        tool: BaseTool,
        metadata: ToolMetadata,
        options: Optional[ToolRegistrationOptions] = None
    ) -> bool:
        """Register a tool; returns False instead of raising on rejection"""
        options = options or ToolRegistrationOptions()
        name = getattr(tool, "name", "") or ""

        if options.validate_tool:
            if not name.strip():
                logger.warning("Rejected tool with empty name")
                return False
            if not metadata.category:
                logger.warning("Rejected tool without category", tool_name=name)
                return False

        with self._write_lock:
            if name in self._tools and not options.overwrite:
                logger.warning("Tool already registered", tool_name=name)
                return False

            tools = dict(self._tools)
            tools[name] = RegisteredTool(name=name, tool=tool, metadata=metadata)
            self._tools = tools

        logger.debug("Tool registered", tool_name=name, category=category_key(metadata.category))
        return True

    def register_batch(
        self,
        entries: Iterable[ToolEntry],
        options: Optional[ToolRegistrationOptions] = None
    ) -> int:
        """Register several tools; returns how many were accepted"""
        return sum(1 for tool, metadata in entries if self.register(tool, metadata, options))

    def register_category(
        self,
        category: str,
        entries: Iterable[ToolEntry],
        options: Optional[ToolRegistrationOptions] = None
    ) -> int:
        """Register tools under one category, overriding their metadata category"""
        key = category_key(category)
        return self.register_batch(
            (ToolEntry(tool, metadata.model_copy(update={"category": key})) for tool, metadata in entries),
            options,
        )

    def get_tool(self, name: str) -> Optional[BaseTool]:
        registered = self._tools.get(name)
        return registered.tool if registered else None

    def get_metadata(self, name: str) -> Optional[ToolMetadata]:
        registered = self._tools.get(name)
        return registered.metadata if registered else None

    def get_registered(self, name: str) -> Optional[RegisteredTool]:
        return self._tools.get(name)

    def has(self, name: str) -> bool:
        return name in self._tools

    def unregister(self, name: str) -> bool:
        """Remove a tool; returns whether it existed"""
        with self._write_lock:
            if name not in self._tools:
                return False
            tools = dict(self._tools)
            del tools[name]
            self._tools = tools
        logger.info("Tool unregistered", tool_name=name)
        return True

    def clear(self):
        with self._write_lock:
            self._tools = {}
        logger.info("Tool registry cleared")

    def query(self, query_filter: Optional[ToolQueryFilter] = None) -> List[RegisteredTool]:
        """Filter tools, ordered by category priority then registration order"""
        query_filter = query_filter or ToolQueryFilter()
        snapshot = list(self._tools.values())

        if query_filter.categories:
            wanted = {category_key(c) for c in query_filter.categories}
            snapshot = [t for t in snapshot if category_key(t.metadata.category) in wanted]

        if query_filter.enabled_only:
            snapshot = [t for t in snapshot if t.metadata.enabled]

        if query_filter.readonly_only is not None:
            snapshot = [t for t in snapshot if t.metadata.readonly == query_filter.readonly_only]

        if query_filter.name_pattern:
            pattern = re.compile(query_filter.name_pattern, re.IGNORECASE)
            snapshot = [t for t in snapshot if pattern.search(t.name)]

        # sorted() is stable, so ties keep insertion order
        return sorted(snapshot, key=lambda t: category_priority(t.metadata.category))

    def get_all_tools(self) -> List[BaseTool]:
        return [t.tool for t in self.query(ToolQueryFilter(enabled_only=False))]

    def get_tools_by_category(self, category: str) -> List[BaseTool]:
        return [t.tool for t in self.query(ToolQueryFilter(categories=[category], enabled_only=False))]

    def get_enabled_tools(self) -> List[BaseTool]:
        return [t.tool for t in self.query()]

    def get_stats(self) -> Dict[str, object]:
        """Totals by category and enabled/disabled counts"""
        snapshot = list(self._tools.values())
        by_category: Dict[str, int] = {}
        for registered in snapshot:
            key = category_key(registered.metadata.category) or "uncategorized"
            by_category[key] = by_category.get(key, 0) + 1

        enabled = sum(1 for t in snapshot if t.metadata.enabled)
        return {
            "total": len(snapshot),
            "enabled": enabled,
            "disabled": len(snapshot) - enabled,
            "by_category": by_category,
        }

    def describe(self) -> Dict[str, List[str]]:
        """Log the catalog grouped by category and return it"""
        grouped: Dict[str, List[str]] = {}
        for registered in self.query(ToolQueryFilter(enabled_only=False)):
            key = category_key(registered.metadata.category) or "uncategorized"
            grouped.setdefault(key, []).append(registered.name)

        for key, names in grouped.items():
            logger.info(
                "Registered tools",
                category=key,
                description=CATEGORY_DESCRIPTIONS.get(key, ""),
                tools=names,
            )
        return grouped
