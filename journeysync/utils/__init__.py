"""Shared utilities for journey sync."""
