"""
Renderer Module

Shared headless browser lifecycle and the card render pipeline.
"""

from .process_manager import (
    BrowserProcessManager,
    BrowserState,
    CloseResult,
    PlaywrightLauncher,
)
from .pipeline import RenderPipeline, RenderConfig, RenderRequest

__all__ = [
    "BrowserProcessManager",
    "BrowserState",
    "CloseResult",
    "PlaywrightLauncher",
    "RenderPipeline",
    "RenderConfig",
    "RenderRequest",
]
