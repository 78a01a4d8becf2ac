"""Core synchronization engine: models, balance reconciliation, history and scheduling."""
