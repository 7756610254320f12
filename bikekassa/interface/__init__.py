"""Mini README: Interactive interfaces for Bike Kassa.

Exports the FastAPI application factory serving the cash desk. The Typer
CLI in ``main_kassa.py`` launches it with uvicorn.
"""

from .web_app import create_application

__all__ = ["create_application"]
