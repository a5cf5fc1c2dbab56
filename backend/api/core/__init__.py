"""Core application wiring: configuration, logging, database, dependencies."""
