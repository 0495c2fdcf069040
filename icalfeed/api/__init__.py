"""HTTP layer: aiohttp application and routes."""
