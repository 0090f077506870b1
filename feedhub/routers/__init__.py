"""API routers for FeedHub."""
