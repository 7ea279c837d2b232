"""Pure domain helpers for the causation kernel."""
