"""Run lifecycle services: creation, execution, queueing and scheduling."""
