"""Command-line helpers shared by MoodMap entry points."""
