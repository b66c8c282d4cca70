"""Application layer: engine services and admin use cases."""
