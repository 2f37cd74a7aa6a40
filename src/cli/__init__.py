"""Command-line entry point, configuration, logging and retry policy."""
