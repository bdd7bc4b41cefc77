"""Command line tools for SupportBot."""
