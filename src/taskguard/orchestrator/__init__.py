"""Task queue, credit admission, failure containment and agent health."""
