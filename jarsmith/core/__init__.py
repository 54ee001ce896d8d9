"""Shared helpers: console output, process execution, config files and archives."""
