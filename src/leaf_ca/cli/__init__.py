"""Command-line interface for leaf-ca."""
