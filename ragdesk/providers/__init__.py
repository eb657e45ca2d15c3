"""Concrete adapters for the interfaces in :mod:`ragdesk.interfaces`."""
