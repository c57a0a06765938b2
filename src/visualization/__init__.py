"""Matplotlib helpers for SIR trajectories."""
