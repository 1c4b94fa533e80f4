"""
Environment Gateway

The contract between the orchestrator and the browser. Every call is
asynchronous and may fail; the orchestrator bounds observation with a
timeout and turns failures into step failures or replans.

Tabs are addressed by integer handles issued by the gateway. The
orchestrator keeps its own name -> handle map (``main``, ``tab_2``, ...).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from pydantic import BaseModel, Field

MAX_CONTENT_CHARS = 4000
MAX_ELEMENTS = 50
MAX_IMAGES = 20
FALLBACK_TEXT_CHARS = 8000

# Primitive kinds a gateway executes directly
PRIMITIVE_KINDS = (
    "CLICK",
    "TYPE",
    "GOTO",
    "SUBMIT",
    "SCROLL_DOWN",
    "PRESS_ESCAPE",
    "EXTRACT_TEXT",
)

RecordedActionCallback = Callable[[dict[str, Any]], Any]


class PageSnapshot(BaseModel):
    """What the Manager sees of a page."""

    url: str = ""
    title: str = ""
    main_content: str = ""
    interactive_elements: list[dict[str, Any]] = Field(default_factory=list)
    images: list[dict[str, Any]] = Field(default_factory=list)

    def truncated(
        self,
        max_content: int = MAX_CONTENT_CHARS,
        max_elements: int = MAX_ELEMENTS,
    ) -> "PageSnapshot":
        """Copy bounded for prompt size."""
        return PageSnapshot(
            url=self.url,
            title=self.title,
            main_content=self.main_content[:max_content],
            interactive_elements=self.interactive_elements[:max_elements],
            images=self.images[:MAX_IMAGES],
        )


@dataclass
class PrimitiveAction:
    """
    One low-level browser operation.

    Attributes:
        action: One of PRIMITIVE_KINDS
        selector: CSS selector of the target element
        text: Text to type
        url: Navigation target
    """

    action: str
    selector: Optional[str] = None
    text: Optional[str] = field(default=None, repr=False)
    url: Optional[str] = None


@dataclass
class ActionOutcome:
    """
    Result of executing a primitive.

    Attributes:
        success: Whether the primitive completed
        error: Error message if it failed
        text: Extracted text (EXTRACT_TEXT)
        opened_tab: Handle of a tab the action opened, if any
    """

    success: bool
    error: Optional[str] = None
    text: Optional[str] = None
    opened_tab: Optional[int] = None

    def __str__(self) -> str:
        if self.success:
            return "Success" if self.text is None else f"Success: {self.text[:200]}"
        return f"Error: {self.error}"


class GatewayError(Exception):
    """The browser could not perform a gateway call."""


class EnvironmentGateway(ABC):
    """Abstract browser host."""

    @abstractmethod
    async def snapshot(self, handle: int) -> PageSnapshot:
        """Observe a tab."""

    @abstractmethod
    async def execute(self, handle: int, action: PrimitiveAction) -> ActionOutcome:
        """Run one primitive on a tab. Element errors come back as a failed outcome."""

    @abstractmethod
    async def create_tab(self, url: str) -> int:
        """Open a tab and return its handle."""

    @abstractmethod
    async def switch_tab(self, handle: int) -> None:
        """Bring a tab to the front."""

    @abstractmethod
    async def wait_for_load(self, handle: int) -> None:
        """Wait until the tab finished loading."""

    @abstractmethod
    async def semantic_search(self, handle: int, query: str, top_k: int = 5) -> list[str]:
        """
        Find the page passages most relevant to a query.

        Falls back to the first FALLBACK_TEXT_CHARS characters of page text
        when embedding retrieval is unavailable.
        """

    @abstractmethod
    async def current_tab(self) -> Optional[int]:
        """Handle of the tab the user is looking at."""

    @abstractmethod
    async def tab_url(self, handle: int) -> Optional[str]:
        """Current URL of a tab."""

    @abstractmethod
    async def start_learning(self, handle: int) -> None:
        """Start reporting user actions on a tab to the recorder."""

    @abstractmethod
    async def stop_learning(self, handle: int) -> None:
        """Stop reporting user actions on a tab."""

    @abstractmethod
    def set_recorder(self, callback: Optional[RecordedActionCallback]) -> None:
        """Register the callback that receives recorded user actions."""

    async def close(self) -> None:
        pass
