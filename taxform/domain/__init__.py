"""Business logic, independent of HTTP concerns."""
