"""The Collectors System: vehicle collection management and assistant."""
