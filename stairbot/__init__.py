"""
Stairbot - Source Package

A small-group bot for logging daily "stairs climbed" counts and
showing leaderboards and per-day charts.

DESIGN PRINCIPLES:
1. Totals always equal the sum of the per-day history
2. A day can never go below zero
3. Validate first, mutate second (no partial application)
4. Every mutation is persisted, in order, atomically
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Stairbot Team"
