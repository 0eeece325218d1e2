"""Pydantic models for xAI (Grok) API responses."""

from pydantic import BaseModel


class XaiChatMessage(BaseModel):
    role: str = "assistant"
    content: str | None = ""

    model_config = {"extra": "ignore"}


class XaiChatChoice(BaseModel):
    message: XaiChatMessage = XaiChatMessage()
    finish_reason: str | None = None

    model_config = {"extra": "ignore"}


class XaiChatCompletion(BaseModel):
    """Response from /chat/completions."""

    model: str = ""
    choices: list[XaiChatChoice] = []

    model_config = {"extra": "ignore"}


class XaiContentPart(BaseModel):
    type: str = ""
    text: str | None = None

    model_config = {"extra": "ignore"}


class XaiOutputItem(BaseModel):
    type: str = ""
    content: list[XaiContentPart] = []

    model_config = {"extra": "ignore"}


class XaiResponse(BaseModel):
    """Response from /responses (agentic tool-calling API)."""

    output: list[XaiOutputItem] = []

    model_config = {"extra": "ignore"}

    @property
    def output_text(self) -> str:
        return "".join(
            part.text or ""
            for item in self.output
            if item.type == "message"
            for part in item.content
            if part.type == "output_text"
        )


class XSearchEntry(BaseModel):
    """One element of the JSON array the batch prompt asks Grok to return."""

    handle: str = ""
    lastPostDate: str | None = None
    accountExists: bool = False
    followers: int | None = None
    lastPost: str | None = None
    correctHandle: str | None = None

    model_config = {"extra": "ignore"}
