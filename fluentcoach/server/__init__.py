"""Local proxy server exposing the analyze and transcribe endpoints."""

from .proxy import create_app, run_proxy

__all__ = ["create_app", "run_proxy"]
