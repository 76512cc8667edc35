"""Concrete adapters for the abstract interfaces in ``propertylens.interfaces``."""
