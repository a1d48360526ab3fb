"""Utility functions for the broker kernel."""
