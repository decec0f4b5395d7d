"""HTTP API for SiteGenie."""
