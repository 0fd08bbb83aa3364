"""Simulation control helpers."""

from .controller import SimulationController, SimulationResult, get_controller, reset_controller

__all__ = ["SimulationController", "SimulationResult", "get_controller", "reset_controller"]
