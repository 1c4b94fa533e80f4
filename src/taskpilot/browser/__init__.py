"""
Browser Module

The environment gateway contract and its Playwright implementation.
"""

from .gateway import (
    PRIMITIVE_KINDS,
    ActionOutcome,
    EnvironmentGateway,
    GatewayError,
    PageSnapshot,
    PrimitiveAction,
)
from .controller import BrowserConfig, BrowserController, create_browser
from .cache import EmbeddedChunks, PageChunkCache
from .playwright_gateway import PlaywrightGateway, chunk_sentences, normalize_selector

__all__ = [
    "PRIMITIVE_KINDS",
    "ActionOutcome",
    "EnvironmentGateway",
    "GatewayError",
    "PageSnapshot",
    "PrimitiveAction",
    "BrowserConfig",
    "BrowserController",
    "create_browser",
    "EmbeddedChunks",
    "PageChunkCache",
    "PlaywrightGateway",
    "chunk_sentences",
    "normalize_selector",
]
