"""
Hierarchical shutdown signal.

A signal is an asyncio.Event that can have children. Setting a signal sets
all of its descendants; setting a child leaves the parent untouched.
"""

from __future__ import annotations

import asyncio
from typing import Optional


class ShutdownSignal:
    """Cooperative cancellation handle shared between tasks."""

    def __init__(self, parent: Optional["ShutdownSignal"] = None, name: str = "root"):
        self.name = name
        self._event = asyncio.Event()
        self._children: list[ShutdownSignal] = []

        if parent is not None:
            parent._children.append(self)
            if parent.is_set():
                self._event.set()

    def child(self, name: str) -> "ShutdownSignal":
        """Derive a signal that is set whenever this one is."""
        return ShutdownSignal(parent=self, name=name)

    def set(self) -> None:
        self._event.set()
        for child in self._children:
            child.set()

    def is_set(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()

    async def wait_for(self, timeout: float) -> bool:
        """
        Wait up to *timeout* seconds.

        Returns:
            True if the signal was set, False on timeout
        """
        if self.is_set() or timeout <= 0:
            return self.is_set()
        try:
            await asyncio.wait_for(self._event.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    def __repr__(self) -> str:
        return f"ShutdownSignal(name={self.name!r}, set={self.is_set()})"
