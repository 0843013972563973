"""Simple Event Bus / Observer implementation for inventory notifications.

Event names used so far:
  inventory.batch_event -> payload {"event": BatchEvent, "batch": Batch}

Subscribers are callables taking (event_name, payload).
"""
from __future__ import annotations
import logging
from collections import defaultdict
from threading import Lock
from typing import Callable, Any, Dict, List

from larder.utilities.constants import BATCH_EVENT_RECORDED

logger = logging.getLogger(__name__)


class EventBus:
	def __init__(self):
		self._subscribers: Dict[str, List[Callable[[str, Any], None]]] = defaultdict(list)
		self._lock = Lock()

	def subscribe(self, event_name: str, callback: Callable[[str, Any], None]):
		with self._lock:
			if callback not in self._subscribers[event_name]:
				self._subscribers[event_name].append(callback)

	def unsubscribe(self, event_name: str, callback: Callable[[str, Any], None]):
		with self._lock:
			if callback in self._subscribers.get(event_name, []):
				self._subscribers[event_name].remove(callback)

	def publish(self, event_name: str, payload: Any):
		"""Deliver to every subscriber; one failing subscriber does not stop the others."""
		with self._lock:
			callbacks = list(self._subscribers.get(event_name, []))
		for cb in callbacks:
			try:
				cb(event_name, payload)
			except Exception:
				logger.exception("Error delivering %s to %r", event_name, cb)


# A singleton-like instance (can be imported)
GLOBAL_EVENT_BUS = EventBus()


def log_listener(event_name: str, payload: Any):
	logger.info("[EVENT] %s: %s", event_name, payload.get('event') if isinstance(payload, dict) else payload)


__all__ = ['EventBus', 'GLOBAL_EVENT_BUS', 'log_listener', 'BATCH_EVENT_RECORDED']
