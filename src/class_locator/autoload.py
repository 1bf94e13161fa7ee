# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Type-resolution hook registry for a host runtime.

The host owns one AutoloadRegistry and calls resolve() whenever it meets a
type name it does not know yet. Registered callbacks are tried in order
until the host reports the type as defined.
"""

import logging
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

# Callback signature: (type_name: str) -> None
ResolveCallback = Callable[[str], None]


class AutoloadRegistry:
    """Ordered chain of type-resolution callbacks.

    Usage:
        registry = AutoloadRegistry(is_defined=lambda name: name in runtime.types)
        loader.register(registry)
        registry.resolve("App\\Model\\User")
    """

    def __init__(self, is_defined: Optional[Callable[[str], bool]] = None):
        """Initialize registry.

        Args:
            is_defined: Reports whether a type is available after a callback
                ran; when omitted every callback is tried.
        """
        self._callbacks: List[ResolveCallback] = []
        self._is_defined = is_defined

    def register(self, callback: ResolveCallback, prepend: bool = False) -> None:
        """Add a callback to the end (or the front) of the chain."""
        if callback in self._callbacks:
            return
        if prepend:
            self._callbacks.insert(0, callback)
        else:
            self._callbacks.append(callback)
        logger.debug(f"Registered resolver: {callback}")

    def unregister(self, callback: ResolveCallback) -> None:
        """Remove a previously registered callback."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)
            logger.debug(f"Unregistered resolver: {callback}")

    @property
    def callbacks(self) -> List[ResolveCallback]:
        """Registered callbacks in call order."""
        return list(self._callbacks)

    def resolve(self, type_name: str) -> bool:
        """Run the chain for one type name.

        Returns:
            True if the host reports the type as defined afterwards. Without an
            is_defined predicate this is always False.
        """
        for callback in self._callbacks:
            callback(type_name)
            if self._is_defined is not None and self._is_defined(type_name):
                return True
        return False
