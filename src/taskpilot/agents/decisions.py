"""
Decision Models

Pydantic models for every structured answer a decision role returns.
Manager actions form a closed, tagged union keyed on the ``action`` field;
an unknown action name fails validation instead of reaching dispatch.
"""

from typing import Annotated, Any, ClassVar, Literal, Optional, Union, get_args

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class Flow:
    """Triage outcomes."""

    STANDARD = "Standard_Flow"
    DELIBERATE = "Deliberate_Flow"


class TriageDecision(BaseModel):
    model_config = ConfigDict(extra="ignore")

    flow: Literal["Standard_Flow", "Deliberate_Flow"] = Flow.STANDARD

    @property
    def is_deliberate(self) -> bool:
        return self.flow == Flow.DELIBERATE


class ResearchFact(BaseModel):
    """One question the Researcher answered, with an optional source."""

    model_config = ConfigDict(extra="ignore")

    question: str
    answer: str
    source: Optional[str] = None


class ResearcherDecision(BaseModel):
    model_config = ConfigDict(extra="ignore")

    thought: str = ""
    facts: list[ResearchFact] = Field(default_factory=list)
    requires_browser: bool = True
    requires_vault: bool = False


class PlannerDecision(BaseModel):
    model_config = ConfigDict(extra="ignore")

    thought: str = ""
    plan: list[str] = Field(default_factory=list)


class VerifierDecision(BaseModel):
    model_config = ConfigDict(extra="ignore")

    is_safe: bool
    reason: str = ""


class PresenterDecision(BaseModel):
    model_config = ConfigDict(extra="ignore")

    summary: str
    call_to_action: Optional[str] = None

    def render(self) -> str:
        """Final answer text: summary, then the call to action when present."""
        if self.call_to_action:
            return f"{self.summary}\n\n{self.call_to_action}"
        return self.summary


class TeacherSummary(BaseModel):
    model_config = ConfigDict(extra="ignore")

    summary: str


class ExpertPersona(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    title: str
    persona: str


class SolutionCandidate(BaseModel):
    """A row in a persona's ranked solution table."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    solution: str = Field(alias="Solution")
    likelihood: Union[float, str] = Field(default=0, alias="Likelihood (1-10)")
    rationale: str = Field(default="", alias="Rationale")


class ConsensusDecision(BaseModel):
    model_config = ConfigDict(extra="ignore")

    html: str
    plan: list[str] = Field(default_factory=list)


# =============================================================================
# Manager actions
# =============================================================================


class ManagerActionBase(BaseModel):
    """
    Fields shared by every Manager action.

    ``navigates`` marks actions that can send the browser to a new origin;
    those are routed through verification when they carry a URL.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    thought: str = ""
    tab_name: Optional[str] = Field(default=None, alias="tabName")

    navigates: ClassVar[bool] = False

    @property
    def kind(self) -> str:
        return getattr(self, "action")

    @property
    def target_url(self) -> Optional[str]:
        return getattr(self, "url", None) or None

    @property
    def requires_verification(self) -> bool:
        return self.navigates and bool(self.target_url)

    def describe(self) -> str:
        """Short human readable form for scratchpad lines."""
        parts = [self.kind]
        for name in ("selector", "url", "query", "tab_name"):
            value = getattr(self, name, None)
            if value:
                parts.append(f"{name}={value}")
        return " ".join(parts)


class ClickAction(ManagerActionBase):
    action: Literal["CLICK"]
    selector: str
    url: Optional[str] = None
    navigates: ClassVar[bool] = True


class TypeAction(ManagerActionBase):
    action: Literal["TYPE"]
    selector: str
    text: str


class GotoAction(ManagerActionBase):
    action: Literal["GOTO"]
    url: str
    navigates: ClassVar[bool] = True


class SubmitAction(ManagerActionBase):
    action: Literal["SUBMIT"]
    selector: str


class SearchAction(ManagerActionBase):
    """Type the text into the field, then submit it."""

    action: Literal["SEARCH"]
    selector: str
    text: str


class ScrollDownAction(ManagerActionBase):
    action: Literal["SCROLL_DOWN"]


class PressEscapeAction(ManagerActionBase):
    action: Literal["PRESS_ESCAPE"]


class ReadAction(ManagerActionBase):
    action: Literal["READ"]
    selector: str = "body"


class ExtractTextAction(ManagerActionBase):
    action: Literal["EXTRACT_TEXT"]
    selector: str = "body"


class SearchPageAction(ManagerActionBase):
    action: Literal["SEARCH_PAGE"]
    query: str


class OpenTabAction(ManagerActionBase):
    action: Literal["OPEN_TAB"]
    url: str
    navigates: ClassVar[bool] = True


class ChangeTabAction(ManagerActionBase):
    action: Literal["CHANGE_TAB"]
    tab_name: str = Field(alias="tabName")


class WaitAction(ManagerActionBase):
    action: Literal["WAIT"]
    duration: Optional[int] = None  # milliseconds


class LongWaitAction(ManagerActionBase):
    action: Literal["LONG_WAIT"]


class SaveCredentialValueAction(ManagerActionBase):
    action: Literal["SAVE_CREDENTIAL_VALUE"]
    value: Optional[str] = Field(default=None, repr=False)


class HelpReplanAction(ManagerActionBase):
    action: Literal["HELP_REPLAN"]
    reason: str = ""


class AnswerAction(ManagerActionBase):
    action: Literal["ANSWER"]
    answer: Optional[str] = None
    reason: str = ""


class PartialSuccessAction(ManagerActionBase):
    action: Literal["PARTIAL_SUCCESS"]
    reason: str = ""


class FailAction(ManagerActionBase):
    action: Literal["FAIL"]
    reason: str = "The agent could not complete the goal."


ManagerAction = Annotated[
    Union[
        ClickAction,
        TypeAction,
        GotoAction,
        SubmitAction,
        SearchAction,
        ScrollDownAction,
        PressEscapeAction,
        ReadAction,
        ExtractTextAction,
        SearchPageAction,
        OpenTabAction,
        ChangeTabAction,
        WaitAction,
        LongWaitAction,
        SaveCredentialValueAction,
        HelpReplanAction,
        AnswerAction,
        PartialSuccessAction,
        FailAction,
    ],
    Field(discriminator="action"),
]

MANAGER_ACTION_ADAPTER: TypeAdapter = TypeAdapter(ManagerAction)

MANAGER_ACTION_TYPES: tuple[type[ManagerActionBase], ...] = get_args(get_args(ManagerAction)[0])

ACTION_KINDS: tuple[str, ...] = tuple(
    get_args(cls.model_fields["action"].annotation)[0] for cls in MANAGER_ACTION_TYPES
)


def parse_manager_action(raw: Any) -> ManagerActionBase:
    """
    Validate a raw Manager answer into its action variant.

    Raises:
        pydantic.ValidationError: Unknown action or missing required fields
    """
    return MANAGER_ACTION_ADAPTER.validate_python(raw)
