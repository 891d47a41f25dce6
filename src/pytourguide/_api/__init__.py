"""Routing API request builders and response parsers."""
