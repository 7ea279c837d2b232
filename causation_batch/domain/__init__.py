"""Pure domain types for causation runs."""
