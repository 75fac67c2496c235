"""
Alias registry for short, site-specific device names.
"""

import logging
from typing import Dict, List, Optional

from home_rules.core.devices import DeviceReference
from home_rules.core.errors import AliasConflictError

logger = logging.getLogger(__name__)


class AliasRegistry:
    """
    Maps short names to canonical device references.

    Several aliases may point at the same reference, but one alias never
    points at two. The registry is frozen (read-only) once a rule set has
    finished loading.
    """

    def __init__(self) -> None:
        self._aliases: Dict[str, DeviceReference] = {}
        self._frozen = False
        self._version = 0

    @property
    def version(self) -> int:
        """Counter that increases on every new binding."""
        return self._version

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(self, alias: str, ref: DeviceReference) -> None:
        """
        Bind an alias to a device reference.

        Re-registering the same (alias, ref) pair is a no-op.

        Args:
            alias: Short name
            ref: Target device reference

        Raises:
            AliasConflictError: If the alias is bound to a different reference
            RuntimeError: If the registry is frozen
            ValueError: If the alias is empty
        """
        if not alias:
            raise ValueError("Alias must not be empty")

        existing = self._aliases.get(alias)
        if existing is not None:
            if existing == ref:
                return
            raise AliasConflictError(alias, existing, ref)

        if self._frozen:
            raise RuntimeError(f"Alias registry is frozen, cannot register '{alias}'")

        self._aliases[alias] = ref
        self._version += 1
        logger.debug(f"Registered alias {alias} -> {ref}")

    def register_all(self, aliases: Dict[str, DeviceReference]) -> None:
        """Register several aliases, stopping at the first conflict."""
        for alias, ref in aliases.items():
            self.register(alias, ref)

    def lookup(self, alias: str) -> Optional[DeviceReference]:
        """
        Look up an alias.

        Args:
            alias: Short name

        Returns:
            The bound reference, or None if not found
        """
        return self._aliases.get(alias)

    def aliases_for(self, ref: DeviceReference) -> List[str]:
        """Get every alias bound to a reference."""
        return [alias for alias, target in self._aliases.items() if target == ref]

    def freeze(self) -> None:
        """Make the registry read-only."""
        self._frozen = True

    def __contains__(self, alias: str) -> bool:
        return alias in self._aliases

    def __len__(self) -> int:
        return len(self._aliases)
