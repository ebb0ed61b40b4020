"""Chat intent handling, product research and retailer tools."""
