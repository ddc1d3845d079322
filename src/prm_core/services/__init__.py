"""Domain services composing repository calls, permission checks and the status engine."""
