"""Routing tools that hand the caller between personas."""
