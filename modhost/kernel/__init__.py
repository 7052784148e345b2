"""Kernel helpers shared by the mod system (config, paths, hashing, logging)."""
