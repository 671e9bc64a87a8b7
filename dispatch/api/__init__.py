"""Gateway, routers and HTTP surface."""
