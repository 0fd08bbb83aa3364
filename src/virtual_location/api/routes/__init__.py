"""Route group exports."""

from . import health, simulation, timeline

__all__ = ["health", "timeline", "simulation"]
