"""Kindle notebook export tools: parse the exported HTML and render a digest."""
