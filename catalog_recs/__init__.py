"""Catalog recommendation and similarity ranking engine."""
