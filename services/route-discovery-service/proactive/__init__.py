"""Proactive suggestions: trigger conditions, cooldowns and dismissals."""

from .engine import ProactiveTriggerEngine
from .triggers import TRIGGERS, Trigger

__all__ = ["ProactiveTriggerEngine", "TRIGGERS", "Trigger"]
