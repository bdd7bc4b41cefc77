"""Shared services for SupportBot: persistence and text generation."""
