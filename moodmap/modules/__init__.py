"""Service modules bundled with MoodMap."""
