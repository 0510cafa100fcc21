import pytest

from roomrevamp.errors import ValidationError
from roomrevamp.prompts import compose, negative_instruction


def test_scene_analysis_asks_for_clutter_section():
    out = compose(1)
    assert "【杂乱物品清单】" in out.instruction


@pytest.mark.parametrize("stage", [2, 3, 4, 5])
def test_redo_differs(stage):
    normal = compose(stage, "bottles", False, scenario="gaming")
    redo = compose(stage, "bottles", True, scenario="gaming")
    assert normal.instruction != redo.instruction


def test_clutter_items_are_named():
    out = compose(2, "bottles, cups")
    assert "bottles" in out.instruction
    assert "cups" in out.instruction
    assert "bottles, cups" in out.negative_instruction


def test_clutter_is_collapsed_to_one_line():
    out = compose(3, "- bottles\n-   cups")
    assert "- bottles - cups" in out.instruction
    assert "\n" not in out.negative_instruction


def test_empty_clutter_leaves_no_placeholder():
    out = compose(2, "")
    assert "{clutter}" not in out.instruction
    assert "previously identified" not in out.instruction
    assert out.negative_instruction == negative_instruction("")


def test_stage5_interpolates_scenario_and_props():
    out = compose(5, "", scenario="yoga class", props="mat, plants")
    assert "yoga class" in out.instruction
    assert "mat, plants" in out.instruction
    assert "yoga class" in out.generation_prompt
    assert out.generation_prompt.endswith("with mat, plants")


def test_stage5_requires_scenario():
    with pytest.raises(ValidationError):
        compose(5, "", scenario="  ")


def test_unknown_stage():
    with pytest.raises(ValidationError):
        compose(6)


def test_deterministic():
    assert compose(4, "cups", True) == compose(4, "cups", True)


def test_generation_prompt_for_cleanup_stages():
    for stage in (2, 3, 4):
        assert compose(stage).generation_prompt
