"""Request and response bodies for the HTTP API."""

from pydantic import BaseModel, ConfigDict, Field


class AssistantRequest(BaseModel):
    """Body of POST /assistant and POST /ask.

    ``query`` is optional at the schema level so a missing question is
    reported as a 400 by the dispatcher rather than a schema error.
    """

    model_config = ConfigDict(populate_by_name=True)

    query: str | None = None
    lang: str | None = None
    top_k: int | None = Field(default=None, alias="topK", ge=1, le=100)
    session_id: str | None = Field(default=None, alias="sessionId", max_length=200)


class AssistantResponse(BaseModel):
    """Reply to an assistant question."""

    model_config = ConfigDict(populate_by_name=True)

    text: str
    sources: list[str]
    lang: str
    session_id: str = Field(alias="sessionId")


class GuideResponse(BaseModel):
    text: str
    lang: str


class TurnModel(BaseModel):
    role: str
    text: str


class SessionHistoryResponse(BaseModel):
    """Turns currently remembered for a session."""

    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId")
    turns: list[TurnModel]
