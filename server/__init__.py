"""HTTP API and background crawl jobs for SupportBot."""
