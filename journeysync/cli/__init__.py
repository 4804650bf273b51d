"""Command-line interface for journey sync."""
