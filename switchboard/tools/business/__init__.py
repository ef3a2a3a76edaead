"""Business tools answered from backing lookups."""
