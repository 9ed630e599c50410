"""
Instance namespace: maps unique identifiers to BrowserSession instances.

Every top-level request gets a fresh identifier, so every request gets its
own instance. Instances stay registered while they hold a browser or a
pending keep-alive alarm, and are dropped once idle.
"""

import logging
import uuid
from typing import Callable, Dict

from .session_manager import BrowserSession

logger = logging.getLogger(__name__)


class InstanceNamespace:
    """Registry of live BrowserSession instances."""

    def __init__(self, factory: Callable[[str], BrowserSession]):
        self._factory = factory
        self._instances: Dict[str, BrowserSession] = {}

    def __len__(self) -> int:
        return len(self._instances)

    def __contains__(self, instance_id: str) -> bool:
        return instance_id in self._instances

    def new_unique_id(self) -> str:
        return uuid.uuid4().hex

    def get(self, instance_id: str) -> BrowserSession:
        """Return the instance for `instance_id`, creating it on first access."""
        instance = self._instances.get(instance_id)
        if instance is None:
            instance = self._factory(instance_id)
            self._instances[instance_id] = instance
        return instance

    def release_if_idle(self, instance_id: str) -> bool:
        """Drop the instance if it holds no browser and no pending alarm."""
        instance = self._instances.get(instance_id)
        if instance is None or not instance.is_idle:
            return False
        del self._instances[instance_id]
        logger.debug(f"Released idle instance {instance_id}")
        return True

    def sweep(self) -> int:
        """Drop every idle instance. Returns the number dropped."""
        return sum(self.release_if_idle(instance_id) for instance_id in list(self._instances))

    async def close_all(self) -> None:
        """Close every instance (service shutdown)."""
        instances = list(self._instances.values())
        self._instances.clear()
        for instance in instances:
            await instance.close()
        if instances:
            logger.info(f"Closed {len(instances)} browser instances")
