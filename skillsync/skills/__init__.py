"""Skill packages — locating them, reading their metadata, and hashing their content."""
