"""Core runtime for deepstate agents."""
