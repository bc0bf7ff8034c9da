"""Core module for configuration, logging, errors, AWS clients, storage and database."""
