"""
Prompts and result shapes for each generation action.

Result shapes are JSON Schema documents handed to the provider for
structured output. ``PROTECTED_KEYS`` names the identifier fields the safety
filter must never redact.
"""

from typing import Any, Dict, FrozenSet

from .actions import (
    DiscoverConcepts,
    DiscoverPhilosophies,
    DiscoverProfiles,
    GeneratePhilosophyEntry,
    GenerateScienceEntry,
    GenerateStory,
)

_STRING = {"type": "string"}
_STRING_LIST = {"type": "array", "items": _STRING}


def _object(**properties: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": properties,
        "required": list(properties),
        "additionalProperties": False,
    }


def list_of(item_shape: Dict[str, Any]) -> Dict[str, Any]:
    return {"type": "array", "items": item_shape}


PROFILE_SHAPE = _object(
    name=_STRING, title=_STRING, description=_STRING, region=_STRING, era=_STRING, values=_STRING_LIST,
)
CONCEPT_SHAPE = _object(
    name=_STRING, field=_STRING, era=_STRING, description=_STRING, tags=_STRING_LIST,
)
PHILOSOPHY_SHAPE = _object(
    name=_STRING, origin=_STRING, era=_STRING, coreIdea=_STRING, tags=_STRING_LIST,
)

_STORY_CONTENT = _object(title=_STRING, introduction=_STRING, mainBody=_STRING, valueReflection=_STRING)

STORY_SHAPE = _object(
    english=_STORY_CONTENT,
    hindi=_STORY_CONTENT,
    illustrationPrompt=_STRING,
    geography=_object(countryName=_STRING, funFact=_STRING, mapPrompt=_STRING),
)
SCIENCE_ENTRY_SHAPE = _object(
    title=_STRING,
    conceptDefinition=_STRING,
    humanStory=_STRING,
    experimentOrActivity=_STRING,
    sources=_STRING_LIST,
    illustrationPrompt=_STRING,
)
PHILOSOPHY_ENTRY_SHAPE = _object(
    title=_STRING,
    coreIdeaExplanation=_STRING,
    historicalEpisode=_STRING,
    modernrelevance=_STRING,
    sources=_STRING_LIST,
    illustrationPrompt=_STRING,
)

PROTECTED_KEYS: FrozenSet[str] = frozenset({
    "name", "field", "era", "region", "origin", "values", "tags", "sources",
    "countryName", "englishStyle", "hindiStyle",
})

IMAGE_STYLE_HINT = (
    "warm colors, children's book illustration style, high quality, artistic, detailed"
)
MAP_STYLE_HINT = (
    "illustrated map style, colorful, educational, cute icons, parchment background, high quality"
)

_PLAIN_ENGLISH = (
    "Write in standard English. Do not use phonetic spelling, heavy dialect or accents."
)


def discover_profiles_prompt(request: DiscoverProfiles, count: int) -> str:
    return (
        f'Generate a list of {count} inspiring individuals in the category "{request.category}".\n'
        f"Language: {request.language}.\n"
        "Diversity is mandatory: vary gender, culture and region, covering several continents.\n"
        "Spread them across history, from ancient to modern times.\n"
        'The "values" field lists 3 virtues each person embodies.'
    )


def discover_concepts_prompt(request: DiscoverConcepts, count: int) -> str:
    return (
        f'Suggest {count} scientific concepts or discoveries in the field "{request.field}".\n'
        "Include at least one discovery from non-Western science or technology.\n"
        "Mix foundational discoveries with modern breakthroughs.\n"
        "Focus on the story behind each concept and how it helped humanity."
    )


def discover_philosophies_prompt(request: DiscoverPhilosophies, count: int) -> str:
    return (
        f'Suggest {count} philosophy topics about "{request.theme}".\n'
        "Mix Eastern (Indian, Chinese, Japanese) and Western (Greek, European) schools of thought.\n"
        "Do not limit the list to one region or one era.\n"
        "Pick ideas that are useful and interesting for a younger audience."
    )


def story_prompt(request: GenerateStory) -> str:
    profile = request.profile
    values = ", ".join(profile.get("values", [])) or "courage and kindness"
    return (
        f"Write a biographical story for children about {profile['name']} ({profile['title']}) "
        f"from {profile['region']} ({profile['era']}).\n"
        "Provide two independent versions, each about 850 words.\n"
        f"1. English, in the style of {request.english_style_name} ({request.english_style_desc}). "
        f"{_PLAIN_ENGLISH}\n"
        f"2. Hindi, in the style of {request.hindi_style_name} ({request.hindi_style_desc}). "
        "Do not translate the English version; retell it in standard Hindi.\n"
        "Each version has a captivating title, an introduction, a main story covering early life, "
        f"challenges and turning points while upholding {values}, and a closing value reflection.\n"
        "Also provide a prompt for a main illustration scene and a geography section with a fun "
        f"fact about {profile['region']} and a map prompt."
    )


def science_entry_prompt(request: GenerateScienceEntry) -> str:
    item = request.item
    return (
        f"Write a children's science entry about {item['name']}.\n"
        f"Field: {item['field']}. Era: {item['era']}. Description: {item['description']}.\n"
        "Audience: children 8-15. Tone: curious, factual. About 900 words.\n"
        f"{_PLAIN_ENGLISH}\n"
        "Focus on how it was discovered or developed and why it is useful for humanity."
    )


def philosophy_entry_prompt(request: GeneratePhilosophyEntry) -> str:
    item = request.item
    return (
        f"Write a children's philosophy entry about {item['name']}.\n"
        f"Origin: {item['origin']}. Era: {item['era']}. Core idea: {item['coreIdea']}.\n"
        "About 800 words. Simplify the idea into an interesting lesson and show its positive "
        "impact on the world.\n"
        f"{_PLAIN_ENGLISH}"
    )
