"""Command-line interface for tokenvest."""
