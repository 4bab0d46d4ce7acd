"""Concrete adapters for the interfaces in mindlens.interfaces."""
