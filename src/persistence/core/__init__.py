"""Configuration, logging, tracing, connections, cache and event delivery."""
