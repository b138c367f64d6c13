"""Styled output helpers for the datapack CLI."""
