"""Terminal renderings of the catalog."""
