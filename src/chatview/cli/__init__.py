"""Command line interface for chatview."""
