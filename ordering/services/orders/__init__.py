"""Order saga, status state machine and notification listener."""
