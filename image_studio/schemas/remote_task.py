"""Remote Task schemas."""

from pydantic import BaseModel, Field
from typing import Literal, Optional
from datetime import datetime, timezone

TaskState = Literal["CREATED", "PROCESSING", "SUCCESS", "FAILED", "CANCELLED"]
TERMINAL_STATES: frozenset[str] = frozenset({"SUCCESS", "FAILED", "CANCELLED"})

NodeRole = Literal["source", "aux"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NodeBinding(BaseModel):
    """Which workflow node input receives which uploaded image."""
    node_id: str
    field_name: str = "image"
    role: NodeRole = "source"


class WorkflowSpec(BaseModel):
    workflow_id: str
    nodes: list[NodeBinding] = Field(min_length=1, max_length=2)

    @property
    def requires_aux(self) -> bool:
        return any(n.role == "aux" for n in self.nodes)

    def node_info_list(self, source_ref: str, aux_ref: Optional[str] = None) -> list[dict]:
        """Render the bindings in the provider's nodeInfoList wire shape."""
        items = []
        for node in self.nodes:
            value = aux_ref if node.role == "aux" else source_ref
            items.append({
                "nodeId": node.node_id,
                "fieldName": node.field_name,
                "fieldValue": value,
            })
        return items


class RetryPolicy(BaseModel):
    max_attempts: int = Field(default=3, ge=1)
    base_delay: float = Field(default=2.0, ge=0)
    multiplier: float = Field(default=2.0, ge=1)

    def delay(self, attempt: int) -> float:
        """Backoff before retry number ``attempt + 1`` (attempt is 0-based)."""
        return self.base_delay * (self.multiplier ** attempt)


class UploadHandle(BaseModel):
    file_name: str
    fingerprint: str
    uploaded_at: datetime = Field(default_factory=_utcnow)


class RemoteTask(BaseModel):
    task_id: str = Field(frozen=True)
    mode: str = Field(frozen=True)
    source_ref: str = Field(frozen=True)
    aux_ref: Optional[str] = Field(default=None, frozen=True)
    state: TaskState = "CREATED"
    outputs: list[str] = Field(default_factory=list)
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def advance(self, state: TaskState, *, outputs: Optional[list[str]] = None, error: Optional[str] = None) -> bool:
        """
        Move to ``state``. Terminal tasks never change again; returns False
        when the transition was ignored.
        """
        if self.is_terminal:
            return False
        self.state = state
        if state == "SUCCESS":
            self.outputs = list(outputs or [])
        if error:
            self.error = error
        if state in TERMINAL_STATES:
            self.completed_at = _utcnow()
        return True
