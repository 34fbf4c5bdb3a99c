"""Pipeline components.

This package contains the emission side of a collection cycle: the agent
line format / graph definition renderer and the last-snapshot state file.
"""
