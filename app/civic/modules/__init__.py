"""
Feature modules live under this package.

Each module owns its models, services and blueprints while reusing platform
primitives (auth, authorization guard, audit logger, change hub, DB session).
"""
