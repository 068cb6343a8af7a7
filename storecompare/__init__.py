"""Multi-store comparison and price-history engine."""
