"""Command-line entry point for kr."""
