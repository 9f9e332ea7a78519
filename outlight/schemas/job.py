"""Job-related Pydantic schemas."""

from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class JobRequest(BaseModel):
    """One generation request: a single prompt against one reference asset."""

    model_config = ConfigDict(frozen=True)

    provider: str
    reference_url: Optional[str] = None
    prompt: str
    options: Dict[str, Any] = Field(default_factory=dict)


class Success(BaseModel):
    """A produced artifact (image or video URL, or a data URL)."""

    kind: Literal["success"] = "success"
    artifact_url: str

    @property
    def ok(self) -> bool:
        return True


class Failure(BaseModel):
    """A per-prompt failure. The diagnostic is passed through untouched."""

    kind: Literal["failure"] = "failure"
    message: str
    diagnostic: Optional[Any] = None

    @property
    def ok(self) -> bool:
        return False


JobOutcome = Union[Success, Failure]
