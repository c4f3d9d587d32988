"""
Tests for request parsing and the closed action set.
"""

import pytest

from lumina_gateway.core.actions import (
    ACTIONS,
    REQUEST_TYPES,
    ActionKind,
    DiscoverConcepts,
    DiscoverProfiles,
    GenerateAudio,
    GenerateImage,
    GeneratePhilosophyEntry,
    GenerateScienceEntry,
    GenerateStory,
    GetUserQuota,
    consumes_quota,
    parse_request,
)
from lumina_gateway.core.errors import InvalidAction

PROFILE = {
    "name": "Savitribai Phule",
    "title": "Educator",
    "region": "Maharashtra",
    "era": "19th century",
    "values": ["courage", "learning"],
}

STORY_PAYLOAD = {
    "profile": PROFILE,
    "englishStyleName": "Storyteller",
    "englishStyleDesc": "Warm and simple",
    "hindiStyleName": "Kahani",
    "hindiStyleDesc": "Saral bhasha",
}


class TestActionSet:
    def test_every_action_is_registered(self):
        assert set(ACTIONS) == {
            "discoverProfiles",
            "discoverConcepts",
            "discoverPhilosophies",
            "generateStory",
            "generateScienceEntry",
            "generatePhilosophyEntry",
            "generateImage",
            "generateAudio",
            "getUserQuota",
        }

    def test_groups(self):
        def of_kind(kind):
            return {cls.ACTION for cls in REQUEST_TYPES if cls.KIND is kind}

        assert of_kind(ActionKind.DISCOVERY) == {"discoverProfiles", "discoverConcepts", "discoverPhilosophies"}
        assert of_kind(ActionKind.ENTRY) == {"generateStory", "generateScienceEntry", "generatePhilosophyEntry"}
        assert of_kind(ActionKind.MEDIA) == {"generateImage", "generateAudio"}

    def test_only_entries_consume_quota(self):
        assert consumes_quota(parse_request("generateStory", STORY_PAYLOAD))
        assert not consumes_quota(DiscoverConcepts(field="physics"))
        assert not consumes_quota(GenerateImage(prompt="a cat"))
        assert not consumes_quota(GetUserQuota())


class TestParseRequest:
    def test_unknown_action(self):
        with pytest.raises(InvalidAction, match="Invalid action"):
            parse_request("deleteEverything", {})

    def test_non_string_action(self):
        with pytest.raises(InvalidAction):
            parse_request(None, {})

    def test_payload_must_be_object(self):
        with pytest.raises(InvalidAction, match="payload must be an object"):
            parse_request("discoverConcepts", ["physics"])

    def test_missing_payload_means_empty(self):
        assert parse_request("getUserQuota", None) == GetUserQuota()

    def test_discovery_variants(self):
        request = parse_request("discoverProfiles", {"category": "Scientists"})
        assert request == DiscoverProfiles(category="Scientists", language="English")
        assert request.criterion == {"category": "Scientists", "language": "English"}

        request = parse_request("discoverConcepts", {"field": "physics", "extra": 1})
        assert request.criterion == {"field": "physics"}

        request = parse_request("discoverPhilosophies", {"theme": "kindness"})
        assert request.criterion == {"theme": "kindness"}

    @pytest.mark.parametrize(
        "action, payload",
        [
            ("discoverProfiles", {}),
            ("discoverProfiles", {"category": "Poets", "language": ""}),
            ("discoverConcepts", {"field": "  "}),
            ("discoverPhilosophies", {"theme": 4}),
            ("generateImage", {"prompt": "map", "isMap": "yes"}),
            ("generateAudio", {}),
        ],
    )
    def test_malformed_payloads(self, action, payload):
        with pytest.raises(InvalidAction):
            parse_request(action, payload)

    def test_generate_story(self):
        request = parse_request("generateStory", STORY_PAYLOAD)
        assert isinstance(request, GenerateStory)
        assert request.profile["name"] == "Savitribai Phule"
        assert request.hindi_style_name == "Kahani"

    def test_story_profile_validation(self):
        payload = dict(STORY_PAYLOAD, profile=dict(PROFILE, region=""))
        with pytest.raises(InvalidAction, match="region"):
            parse_request("generateStory", payload)

        payload = dict(STORY_PAYLOAD, profile=dict(PROFILE, values="courage"))
        with pytest.raises(InvalidAction, match="values"):
            parse_request("generateStory", payload)

    def test_entry_items(self):
        science = parse_request(
            "generateScienceEntry",
            {"item": {"name": "Gravity", "field": "physics", "era": "1687", "description": "Falling"}},
        )
        assert isinstance(science, GenerateScienceEntry)

        philosophy = parse_request(
            "generatePhilosophyEntry",
            {"item": {"name": "Ahimsa", "origin": "India", "era": "Ancient", "coreIdea": "Non-harm"}},
        )
        assert isinstance(philosophy, GeneratePhilosophyEntry)

        with pytest.raises(InvalidAction, match="coreIdea"):
            parse_request(
                "generatePhilosophyEntry",
                {"item": {"name": "Ahimsa", "origin": "India", "era": "Ancient"}},
            )

    def test_media_variants(self):
        image = parse_request("generateImage", {"prompt": "Old Delhi", "isMap": True})
        assert image == GenerateImage(prompt="Old Delhi", is_map=True)
        assert image.cache_payload == {"prompt": "Old Delhi", "isMap": True}
        assert parse_request("generateAudio", {"text": "Hello"}) == GenerateAudio(text="Hello")
