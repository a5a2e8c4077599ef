"""Concrete adapters for the interfaces in :mod:`thinkfolio.interfaces`."""
