"""JSON blueprints. Each package exposes one Blueprint object."""
