"""FastAPI dependencies shared across try-on endpoints."""

from fastapi import Request

from garment_synth.services.container import ServiceContainer


def get_services(request: Request) -> ServiceContainer:
    """Return the service container built at application start-up."""
    return request.app.state.services
