"""Pydantic models for the Ollama HTTP API.

Only the fields the benchmark reads are declared; everything else in the
envelopes is ignored.
"""

from typing import Optional

from pydantic import BaseModel

# =============================================================================
# /api/generate
# =============================================================================


class GenerateChunk(BaseModel):
    """One envelope from /api/generate.

    Streamed responses are a sequence of these, the last one has ``done``
    set and carries the token counts. Non-streamed responses are a single
    envelope with ``done`` set.
    """

    model: Optional[str] = None
    response: str = ""
    done: bool = False
    error: Optional[str] = None

    # Terminal envelope only
    done_reason: Optional[str] = None
    total_duration: Optional[int] = None  # nanoseconds
    load_duration: Optional[int] = None
    prompt_eval_count: Optional[int] = None
    prompt_eval_duration: Optional[int] = None
    eval_count: Optional[int] = None
    eval_duration: Optional[int] = None

    @property
    def eval_tokens_per_second(self) -> Optional[float]:
        """Decode speed as measured by the backend itself"""
        if not self.eval_count or not self.eval_duration:
            return None
        return self.eval_count * 1_000_000_000 / self.eval_duration


# =============================================================================
# /api/tags and /api/ps
# =============================================================================


class ModelEntry(BaseModel):
    """A model in a listing response"""

    name: str
    model: Optional[str] = None
    size: int = 0
    size_vram: Optional[int] = None


class ModelList(BaseModel):
    """Response of /api/tags (installed) and /api/ps (loaded)"""

    models: list[ModelEntry] = []
