"""Instruction overrides: cached global and organization maps and their merge."""
