"""JSON API over the alert engine."""
