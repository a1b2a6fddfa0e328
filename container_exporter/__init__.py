"""
Container Stats Exporter for Prometheus

Polls the Docker API for per-container resource usage, samples filesystem
capacity under a base path, and republishes both as a Prometheus scrape
endpoint. Series for containers, interfaces and mounts that disappear are
pruned on the next collection cycle.
"""

__version__ = "1.0.0"
