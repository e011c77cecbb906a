"""Application assembly: logging/Sentry, middleware, routes and lifecycle hooks."""
