"""HTTP middleware for the journey sync API."""
