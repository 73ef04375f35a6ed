"""
KiraPilot Tool Catalog - Registry of the tools the agent may invoke

The catalog is built once at startup and then shared by every reasoning loop.
Writes are serialized by a lock; reads work on an immutable snapshot so a
concurrent ``register`` never disturbs an ongoing lookup or listing.
"""

import logging
import threading
from typing import Dict, Iterable, List, Optional, Tuple

from .models import PermissionCheck, PermissionLevel, ToolDefinition, normalize_permissions

logger = logging.getLogger(__name__)


class DuplicateToolError(ValueError):
    """Raised when a tool name is registered twice."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Tool '{name}' is already registered")


class ToolCatalog:
    """
    Registry of ToolDefinitions keyed by name

    Example:
        catalog = ToolCatalog()
        catalog.register(create_task)
        catalog.check_permission("create_task", {PermissionLevel.MODIFY_TASKS})
    """

    def __init__(self, tools: Optional[Iterable[ToolDefinition]] = None):
        self._lock = threading.Lock()
        self._tools: Dict[str, ToolDefinition] = {}
        self._snapshot: Tuple[ToolDefinition, ...] = ()
        for definition in tools or ():
            self.register(definition)

    def register(self, definition: ToolDefinition) -> ToolDefinition:
        """Add a tool. Raises DuplicateToolError if the name is taken."""
        with self._lock:
            if definition.name in self._tools:
                raise DuplicateToolError(definition.name)
            tools = dict(self._tools)
            tools[definition.name] = definition
            self._tools = tools
            self._snapshot = tuple(tools.values())
        logger.debug(
            f"Registered tool '{definition.name}' "
            f"(permission={definition.required_permission.value})"
        )
        return definition

    def unregister(self, name: str) -> bool:
        """Remove a tool by name. Returns True if it was registered."""
        with self._lock:
            if name not in self._tools:
                return False
            tools = dict(self._tools)
            del tools[name]
            self._tools = tools
            self._snapshot = tuple(tools.values())
        logger.debug(f"Unregistered tool '{name}'")
        return True

    def lookup(self, name: str) -> Optional[ToolDefinition]:
        return self._tools.get(name)

    def list(self) -> List[ToolDefinition]:
        """All definitions in registration order (a fresh list on each call)."""
        return list(self._snapshot)

    def names(self) -> List[str]:
        return [definition.name for definition in self._snapshot]

    def check_permission(self, name: str, granted: Iterable) -> PermissionCheck:
        """
        Check whether a caller holding ``granted`` may invoke tool ``name``

        FULL_ACCESS satisfies any requirement. Unknown tools are denied.
        """
        definition = self.lookup(name)
        if definition is None:
            return PermissionCheck(allowed=False, reason=f"Tool '{name}' not found")

        required = definition.required_permission
        levels = normalize_permissions(granted)
        if required in levels or PermissionLevel.FULL_ACCESS in levels:
            return PermissionCheck(allowed=True, required_permission=required)

        return PermissionCheck(
            allowed=False,
            reason=f"Insufficient permissions for tool '{name}': {required.value} required",
            required_permission=required,
        )

    def tools_for(self, granted: Iterable) -> List[ToolDefinition]:
        """Definitions the caller may invoke, in registration order."""
        levels = normalize_permissions(granted)
        if PermissionLevel.FULL_ACCESS in levels:
            return self.list()
        return [d for d in self._snapshot if d.required_permission in levels]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._snapshot)

    def __iter__(self):
        return iter(self._snapshot)
