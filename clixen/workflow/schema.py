from typing import List, Optional, Dict, Any, Tuple, Iterator
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .node_kinds import NodeConfig, make_config, is_trigger_kind


class Credential(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: str
    id: Optional[str] = None
    name: Optional[str] = None


class Connection(BaseModel):
    """ One directed edge: data leaves the source on `output` and enters `node` on input slot `index`. """
    model_config = ConfigDict(extra="forbid")

    node: str
    index: int = 0
    output: int = 0

    @model_validator(mode="before")
    @classmethod
    def _shorthand(cls, data: Any) -> Any:
        # "target" or ["target", 1] are accepted for brevity in model output
        if isinstance(data, str):
            return {"node": data}
        if isinstance(data, (list, tuple)):
            if not data:
                raise ValueError("Connection shorthand needs a target node")
            return {"node": data[0], "index": data[1] if len(data) > 1 else 0}
        return data


class Node(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str = Field(min_length=1)
    name: str = ""
    kind: str = Field(min_length=1)
    position: Optional[Tuple[int, int]] = None
    parameters: Dict[str, Any] = Field(default_factory=dict)
    credential: Optional[Credential] = None
    type_version: Optional[float] = None

    @model_validator(mode="after")
    def _check_config(self) -> "Node":
        if not self.name:
            self.name = self.id
        try:
            make_config(self.kind, self.parameters)
        except ValidationError as e:
            raise ValueError(f"Invalid parameters for {self.kind} node '{self.id}': {e}") from e
        return self

    @property
    def config(self) -> NodeConfig:
        return make_config(self.kind, self.parameters)

    @property
    def is_trigger(self) -> bool:
        return is_trigger_kind(self.kind)


class WorkflowSpecification(BaseModel):
    name: str = Field(min_length=1)
    nodes: List[Node] = Field(default_factory=list)
    connections: Dict[str, List[Connection]] = Field(default_factory=dict)
    active: bool = False
    settings: Dict[str, Any] = Field(default_factory=lambda: {"executionOrder": "v1"})

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def _unique_nodes(self) -> "WorkflowSpecification":
        seen_ids, seen_names = set(), set()
        for node in self.nodes:
            if node.id in seen_ids:
                raise ValueError(f"Duplicate node id: {node.id}")
            # the engine keys connections by display name, so names must be unique too
            if node.name in seen_names:
                raise ValueError(f"Duplicate node name: {node.name}")
            seen_ids.add(node.id)
            seen_names.add(node.name)
        return self

    def node(self, node_id: str) -> Optional[Node]:
        return next((n for n in self.nodes if n.id == node_id), None)

    def node_ids(self) -> List[str]:
        return [n.id for n in self.nodes]

    def trigger_nodes(self) -> List[Node]:
        return [n for n in self.nodes if n.is_trigger]

    def edges(self) -> Iterator[Tuple[str, Connection]]:
        for src, targets in self.connections.items():
            for conn in targets:
                yield src, conn

    def snapshot(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


def validate_specification(raw: Dict[str, Any]) -> WorkflowSpecification:
    """Validate a raw dict against WorkflowSpecification."""
    try:
        return WorkflowSpecification.model_validate(raw)
    except ValidationError as e:
        raise ValueError(f"Specification validation error: {e}") from e
