"""Imperative-shell services of the broker kernel."""
