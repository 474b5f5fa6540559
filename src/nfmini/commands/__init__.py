"""CLI command groups for nfmini."""
