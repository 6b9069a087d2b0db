"""HTTP middlewares for the web application."""
