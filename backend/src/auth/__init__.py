"""Role model and session port."""
