"""Domain services sitting between routers and repositories."""
