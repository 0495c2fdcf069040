"""Configuration, logging, caching and HTTP client infrastructure."""
