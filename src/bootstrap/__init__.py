"""Composition root for wiring dependencies.

This package centralizes infrastructure-aware wiring so collaborators and
the maintenance CLI can depend on ports without importing infrastructure
directly.
"""
