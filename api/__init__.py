"""Internal REST routers."""
