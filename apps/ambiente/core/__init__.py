"""Settings, logging, errors, persistence and dependency wiring."""
