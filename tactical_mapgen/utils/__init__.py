"""
Shared helpers for the layer generators.
"""
