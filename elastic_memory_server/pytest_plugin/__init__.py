"""Pytest integration: session fixtures backed by an ElasticMemoryServer."""
