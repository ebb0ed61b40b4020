"""Parsing and formatting helpers shared by import, export and chat."""
