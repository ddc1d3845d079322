"""HTTP API for the product requirements core."""
