#!/usr/bin/env python3
# CUI // SP-CTI
"""Declaration records produced by module evaluation."""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

RESOURCE = "resource"
DATA = "data"


@dataclass
class Declaration:
    """A single resource or data source instance, identified by its address."""

    kind: str  # resource, data
    type: str
    name: str
    key: Union[int, str]
    attributes: Dict[str, Any] = field(default_factory=dict)

    @property
    def address(self) -> str:
        index = self.key if isinstance(self.key, int) else json.dumps(self.key)
        prefix = "data." if self.kind == DATA else ""
        return f"{prefix}{self.type}.{self.name}[{index}]"

    def to_dict(self) -> dict:
        return {
            "address": self.address,
            "kind": self.kind,
            "type": self.type,
            "name": self.name,
            "key": self.key,
            "attributes": self.attributes,
        }


@dataclass
class ModulePlan:
    """Result of evaluating the module: declarations plus outputs."""

    resources: List[Declaration] = field(default_factory=list)
    data_sources: List[Declaration] = field(default_factory=list)
    outputs: Dict[str, Any] = field(default_factory=dict)

    def resources_of_type(self, resource_type: str) -> List[Declaration]:
        return [r for r in self.resources if r.type == resource_type]

    def find(self, address: str) -> Optional[Declaration]:
        for decl in self.resources + self.data_sources:
            if decl.address == address:
                return decl
        return None

    def summary(self) -> Dict[str, int]:
        """Count of declared resources per resource type."""
        counts: Dict[str, int] = {}
        for r in self.resources:
            counts[r.type] = counts.get(r.type, 0) + 1
        return counts

    def to_dict(self) -> dict:
        return {
            "resources": [r.to_dict() for r in self.resources],
            "data_sources": [d.to_dict() for d in self.data_sources],
            "outputs": self.outputs,
            "summary": self.summary(),
        }
