"""Command-line tools for the PropertyLens coordinator."""
