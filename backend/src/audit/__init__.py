"""Audit log contract: append-only records of privileged actions."""
