"""Infinite Chronicles: an LLM-driven interactive narrative engine."""
