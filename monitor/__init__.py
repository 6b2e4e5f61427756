"""Metric sampling: sources, sample history and the tick scheduler."""
