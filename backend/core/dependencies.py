"""FastAPI dependencies shared by the routers"""

from fastapi import Request

from .context import AppContext


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def client_key(request: Request) -> str:
    """Rate limit key: first X-Forwarded-For hop, else the peer address"""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if request.client and request.client.host:
        return request.client.host
    return "unknown"
