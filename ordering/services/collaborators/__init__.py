"""Clients for the services the order core depends on."""
