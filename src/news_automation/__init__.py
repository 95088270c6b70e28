"""Crawl crypto news feeds, score and deduplicate them, and publish daily articles."""

__all__ = ["config", "models", "processor", "generator", "scheduler"]
