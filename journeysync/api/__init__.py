"""FastAPI application for journey editing and sync control."""
