from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional


def _lookup(data: Mapping[str, Any], key: str, default: Any = None) -> Any:
    """Case-insensitive key lookup; model files use camelCase property names."""

    if key in data:
        return data[key]
    lowered = key.lower()
    for candidate, value in data.items():
        if isinstance(candidate, str) and candidate.lower() == lowered:
            return value
    return default


def _string_list(value: Any) -> List[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"Expected a list of strings, got {type(value).__name__}")
    return [str(item) for item in value if item is not None]


def _object_list(value: Any, name: str) -> List[Mapping[str, Any]]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, dict) for item in value):
        raise ValueError(f"'{name}' must be a list of objects")
    return value


@dataclass
class PageElementParameter:
    name: str
    type: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PageElementParameter":
        return cls(name=str(_lookup(data, "name", "")), type=str(_lookup(data, "type", "")))


@dataclass
class PageElement:
    name: str
    css_path: str = ""
    utterances: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PageElement":
        return cls(
            name=str(_lookup(data, "name", "")),
            css_path=str(_lookup(data, "cssPath", "") or ""),
            utterances=_string_list(_lookup(data, "utterances")),
        )


@dataclass
class PageStep:
    description: str
    action: str = ""
    element: str = ""
    value: str = ""
    utterances: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PageStep":
        return cls(
            description=str(_lookup(data, "description", "")),
            action=str(_lookup(data, "action", "") or ""),
            element=str(_lookup(data, "element", "") or ""),
            value=str(_lookup(data, "value", "") or ""),
            utterances=_string_list(_lookup(data, "utterances")),
        )


@dataclass
class PageTask:
    name: str
    description: str = ""
    parameters: Optional[List[PageElementParameter]] = None
    steps: List[PageStep] = field(default_factory=list)
    utterances: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PageTask":
        raw_parameters = _lookup(data, "parameters")
        parameters = (
            [PageElementParameter.from_dict(item) for item in _object_list(raw_parameters, "parameters")]
            if raw_parameters is not None
            else None
        )
        return cls(
            name=str(_lookup(data, "name", "")),
            description=str(_lookup(data, "description", "") or ""),
            parameters=parameters,
            steps=[PageStep.from_dict(item) for item in _object_list(_lookup(data, "steps"), "steps")],
            utterances=_string_list(_lookup(data, "utterances")),
        )


@dataclass
class PageObjectModel:
    """A page of the application under automation with its elements and tasks."""

    name: str
    url: str
    description: str = ""
    type: str = "page"
    elements: List[PageElement] = field(default_factory=list)
    tasks: List[PageTask] = field(default_factory=list)
    utterances: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PageObjectModel":
        name = _lookup(data, "name")
        url = _lookup(data, "url")
        if not name or not url:
            raise ValueError("Page object model requires 'name' and 'url'")
        return cls(
            name=str(name),
            url=str(url),
            description=str(_lookup(data, "description", "") or ""),
            type=str(_lookup(data, "type", "page") or "page"),
            elements=[
                PageElement.from_dict(item) for item in _object_list(_lookup(data, "elements"), "elements")
            ],
            tasks=[PageTask.from_dict(item) for item in _object_list(_lookup(data, "tasks"), "tasks")],
            utterances=_string_list(_lookup(data, "utterances")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "url": self.url,
            "name": self.name,
            "description": self.description,
            "elements": [
                {"name": e.name, "cssPath": e.css_path, "utterances": list(e.utterances)}
                for e in self.elements
            ],
            "tasks": [
                {
                    "name": t.name,
                    "description": t.description,
                    "parameters": (
                        [{"name": p.name, "type": p.type} for p in t.parameters]
                        if t.parameters is not None
                        else None
                    ),
                    "steps": [
                        {
                            "description": s.description,
                            "action": s.action,
                            "element": s.element,
                            "value": s.value,
                            "utterances": list(s.utterances),
                        }
                        for s in t.steps
                    ],
                    "utterances": list(t.utterances),
                }
                for t in self.tasks
            ],
            "utterances": list(self.utterances),
        }


__all__ = [
    "PageElement",
    "PageElementParameter",
    "PageObjectModel",
    "PageStep",
    "PageTask",
]
