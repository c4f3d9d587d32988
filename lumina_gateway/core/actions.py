"""
Closed set of requests the gateway understands.

One frozen dataclass per action. ``parse_request`` is the only place an
action name string is looked at; everything downstream dispatches on the
variant type.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Tuple, Type, Union

from .errors import InvalidAction


class ActionKind(Enum):
    """How the orchestrator treats an action."""
    DISCOVERY = "discovery"
    ENTRY = "entry"
    MEDIA = "media"
    QUOTA = "quota"


def _require_str(payload: Mapping[str, Any], key: str, action: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value.strip():
        raise InvalidAction(f"{action}: '{key}' must be a non-empty string")
    return value


def _require_item(payload: Mapping[str, Any], key: str, action: str, fields: Tuple[str, ...]) -> Dict[str, Any]:
    value = payload.get(key)
    if not isinstance(value, dict):
        raise InvalidAction(f"{action}: '{key}' must be an object")
    for name in fields:
        _require_str(value, name, f"{action}.{key}")
    return dict(value)


@dataclass(frozen=True)
class DiscoverProfiles:
    """List inspiring people in a category."""
    ACTION = "discoverProfiles"
    KIND = ActionKind.DISCOVERY
    category: str
    language: str = "English"

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "DiscoverProfiles":
        language = payload.get("language", "English")
        if not isinstance(language, str) or not language.strip():
            raise InvalidAction(f"{cls.ACTION}: 'language' must be a non-empty string")
        return cls(category=_require_str(payload, "category", cls.ACTION), language=language)

    @property
    def criterion(self) -> Dict[str, Any]:
        return {"category": self.category, "language": self.language}


@dataclass(frozen=True)
class DiscoverConcepts:
    """List scientific concepts in a field."""
    ACTION = "discoverConcepts"
    KIND = ActionKind.DISCOVERY
    field: str

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "DiscoverConcepts":
        return cls(field=_require_str(payload, "field", cls.ACTION))

    @property
    def criterion(self) -> Dict[str, Any]:
        return {"field": self.field}


@dataclass(frozen=True)
class DiscoverPhilosophies:
    """List philosophy topics around a theme."""
    ACTION = "discoverPhilosophies"
    KIND = ActionKind.DISCOVERY
    theme: str

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "DiscoverPhilosophies":
        return cls(theme=_require_str(payload, "theme", cls.ACTION))

    @property
    def criterion(self) -> Dict[str, Any]:
        return {"theme": self.theme}


@dataclass(frozen=True)
class GenerateStory:
    """Bilingual biographical story about a profile."""
    ACTION = "generateStory"
    KIND = ActionKind.ENTRY
    profile: Dict[str, Any]
    english_style_name: str
    english_style_desc: str
    hindi_style_name: str
    hindi_style_desc: str

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "GenerateStory":
        profile = _require_item(payload, "profile", cls.ACTION, ("name", "title", "region", "era"))
        values = profile.get("values", [])
        if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
            raise InvalidAction(f"{cls.ACTION}.profile: 'values' must be a list of strings")
        return cls(
            profile=profile,
            english_style_name=_require_str(payload, "englishStyleName", cls.ACTION),
            english_style_desc=_require_str(payload, "englishStyleDesc", cls.ACTION),
            hindi_style_name=_require_str(payload, "hindiStyleName", cls.ACTION),
            hindi_style_desc=_require_str(payload, "hindiStyleDesc", cls.ACTION),
        )


@dataclass(frozen=True)
class GenerateScienceEntry:
    """Children's science entry about a concept."""
    ACTION = "generateScienceEntry"
    KIND = ActionKind.ENTRY
    item: Dict[str, Any]

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "GenerateScienceEntry":
        return cls(item=_require_item(payload, "item", cls.ACTION, ("name", "field", "era", "description")))


@dataclass(frozen=True)
class GeneratePhilosophyEntry:
    """Children's philosophy entry about an idea."""
    ACTION = "generatePhilosophyEntry"
    KIND = ActionKind.ENTRY
    item: Dict[str, Any]

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "GeneratePhilosophyEntry":
        return cls(item=_require_item(payload, "item", cls.ACTION, ("name", "origin", "era", "coreIdea")))


@dataclass(frozen=True)
class GenerateImage:
    """Single illustration or map image."""
    ACTION = "generateImage"
    KIND = ActionKind.MEDIA
    prompt: str
    is_map: bool = False

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "GenerateImage":
        is_map = payload.get("isMap", False)
        if not isinstance(is_map, bool):
            raise InvalidAction(f"{cls.ACTION}: 'isMap' must be a boolean")
        return cls(prompt=_require_str(payload, "prompt", cls.ACTION), is_map=is_map)

    @property
    def cache_payload(self) -> Dict[str, Any]:
        return {"prompt": self.prompt, "isMap": self.is_map}


@dataclass(frozen=True)
class GenerateAudio:
    """Narration of a piece of text."""
    ACTION = "generateAudio"
    KIND = ActionKind.MEDIA
    text: str

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "GenerateAudio":
        return cls(text=_require_str(payload, "text", cls.ACTION))


@dataclass(frozen=True)
class GetUserQuota:
    """Read the caller's usage for today."""
    ACTION = "getUserQuota"
    KIND = ActionKind.QUOTA

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "GetUserQuota":
        return cls()


Request = Union[
    DiscoverProfiles,
    DiscoverConcepts,
    DiscoverPhilosophies,
    GenerateStory,
    GenerateScienceEntry,
    GeneratePhilosophyEntry,
    GenerateImage,
    GenerateAudio,
    GetUserQuota,
]

REQUEST_TYPES: Tuple[Type, ...] = Request.__args__

ACTIONS: Dict[str, Type] = {cls.ACTION: cls for cls in REQUEST_TYPES}


def consumes_quota(request: Request) -> bool:
    """Entries are the only actions counted against the daily quota."""
    return request.KIND is ActionKind.ENTRY


def parse_request(action: Any, payload: Any) -> Request:
    """Turn an ``(action, payload)`` pair into a request variant.

    Args:
        action: Action name from the RPC body
        payload: Action payload from the RPC body; None means empty

    Returns:
        The matching request variant

    Raises:
        InvalidAction: If the action is unknown or the payload malformed
    """
    if not isinstance(action, str) or action not in ACTIONS:
        raise InvalidAction(f"Invalid action: {action!r}")
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise InvalidAction(f"{action}: payload must be an object")
    return ACTIONS[action].from_payload(payload)


def is_throttled(request: Request) -> bool:
    """Every action that can reach the provider counts against the request limiter."""
    return request.KIND is not ActionKind.QUOTA
