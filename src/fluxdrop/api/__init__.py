"""Fluxdrop — FastAPI REST API layer.

Modules
-------
main
    FastAPI application with the route handlers, error envelope, and the
    ``main()`` CLI entry point.
models
    Pydantic models for API request and response bodies.
"""
