"""State/store layer.

This package is the single source of truth for how local sightings and
records heard from peers are verified, merged and expired into one
consistent view of the live stars.
"""
