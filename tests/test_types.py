import pytest

from roomrevamp.errors import ValidationError
from roomrevamp.types import ImageOutcome, ImageReference, PipelineState, StageName, TextOutcome


def test_image_reference_needs_exactly_one():
    with pytest.raises(ValidationError):
        ImageReference()
    with pytest.raises(ValidationError):
        ImageReference(data=b"x", url="https://x")


def test_image_reference_parse():
    assert ImageReference.parse("https://x/y.png").kind == "url"
    assert ImageReference.parse("data:image/png;base64,AAAA").kind == "data_uri"
    with pytest.raises(ValidationError):
        ImageReference.parse("/tmp/local.png")


def test_restore_seeds_prerequisite():
    photo = ImageReference.from_bytes(b"p")
    s2 = PipelineState.restore(2, photo, " cups ")
    assert s2.photo == photo
    assert s2.completed == {1}
    assert s2.clutter_list == "cups"

    prev = ImageReference.parse("https://cdn/3.png")
    s4 = PipelineState.restore(4, prev)
    assert s4.completed == {1, 2, 3}
    assert s4.input_image_for(4) == prev

    assert PipelineState.restore(3).completed == set()


def test_merge_and_to_dict():
    s = PipelineState(photo=ImageReference.from_bytes(b"p"))
    s.merge(1, TextOutcome(analysis="a", extracted_clutter_list="cups"))
    s.merge(2, ImageOutcome(image_url="https://cdn/2.png"))
    assert s.to_dict() == {
        "stage1Text": "a",
        "clutterList": "cups",
        "stageImages": {"2": "https://cdn/2.png"},
        "completed": [1, 2],
    }


def test_stage_names():
    assert StageName.for_stage(1) == StageName.SCENE_ANALYSIS
    assert StageName.for_stage(5) == StageName.ADD_PROPS


def test_outcome_dicts():
    assert TextOutcome(analysis="a", description="d").to_dict() == {"analysis": "a", "description": "d", "clutterList": ""}
    assert ImageOutcome(image_url="u", description="d", degraded=True).to_dict() == {
        "imageUrl": "u",
        "description": "d",
        "degraded": True,
    }
