"""Core functionality: models, upstream access, refresh services and storage."""
