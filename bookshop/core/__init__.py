"""Configuration, logging, error types and shared constants."""
