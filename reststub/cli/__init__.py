"""Command line interface for reststub."""
