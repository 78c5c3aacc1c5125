"""Order workflow services."""
