"""
Timer session engine: state machine, serializer and clock driver.
No UI or storage dependencies.
"""

from core.timer_engine import TimerEngine

__all__ = ["TimerEngine"]
