"""Service layer: geodesy, timeline building, playback and simulation control."""
