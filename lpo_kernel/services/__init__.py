"""Kernel services: sequence allocation and per-entity locking."""
