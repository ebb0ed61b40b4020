"""HTTP API for The Collectors System."""
