"""Stage instruction templates.

`compose()` is pure: the same arguments always produce the same text.
"""

from __future__ import annotations

import re
from typing import Optional

from .clutter import CLUTTER_LABEL
from .errors import ValidationError
from .types import FIRST_STAGE, LAST_STAGE, ComposedInstruction

_PRESERVE = (
    "Keep the room's structure, walls, windows, doors, camera angle, lighting and large furniture "
    "exactly as they are; the result must still look like the same real room photo."
)

_SCENE_ANALYSIS = (
    "You are a professional interior stylist preparing this room for a live-streaming backdrop. "
    "Analyse the photo and answer in the following labelled sections:\n"
    "【场景概述】 room type, size impression, lighting and overall style.\n"
    f"{CLUTTER_LABEL} every messy, unnecessary or distracting object you can see "
    "(trash, bottles, cups, loose cables, piled clothes, stickers, stains), as a comma-separated list.\n"
    "【布局建议】 how the furniture and remaining objects could be arranged better.\n"
    "Do not describe anything that is not visible in the photo."
)

_BASIC_CLEANUP = (
    "Clean up this room photo: remove obvious trash, litter, empty bottles and cups, loose paper "
    "and other clearly disposable clutter from every surface and from the floor. {clutter}"
    + _PRESERVE
)

_BASIC_CLEANUP_INTENSIFY = (
    "The previous cleanup left too much behind. Clean this room photo much more thoroughly: "
    "remove ALL remaining trash, bottles, cups, packaging, paper and small loose objects, including "
    "partially hidden ones in corners, on shelves and under furniture. {clutter}"
    + _PRESERVE
)

_DEEP_CLEANUP = (
    "Deep-clean this room photo: remove stickers, stains, marks and dust from walls, floor and "
    "furniture, tidy tangled cables, fold or remove piled clothes and straighten small items. {clutter}"
    + _PRESERVE
)

_DEEP_CLEANUP_INTENSIFY = (
    "The previous deep clean was not enough. Go further on this room photo: erase every remaining "
    "sticker, stain, scuff and mark, hide all visible cables, remove any leftover clothes and small "
    "objects, and make every surface look freshly cleaned. {clutter}"
    + _PRESERVE
)

_LAYOUT_OPTIMIZE = (
    "Optimise the layout of this tidy room photo: arrange the remaining furniture and objects neatly, "
    "align items, balance the composition and open up free space in the camera's view so it works as "
    "a clean live-streaming background. {clutter}"
    + _PRESERVE
)

_ADD_PROPS = (
    "Decorate this clean room photo for a \"{scenario}\" live stream. Add suitable professional props, "
    "decorations and lighting accents that match the scenario{props}, placed naturally in the space "
    "without blocking the camera's view. {clutter}"
    + _PRESERVE
)

_REDO_CLAUSE = (
    " A previous attempt at this step was not satisfactory: apply the changes more clearly and visibly "
    "this time, while still respecting every constraint above."
)

_NEGATIVE = (
    "clutter, mess, trash, litter, garbage, bottles, cups, stains, stickers, tangled cables, "
    "piled clothes, dirty surfaces, distorted walls, changed room structure, extra doors or windows, "
    "warped perspective, blurry, low quality, watermark text"
)

_GENERATION = {
    2: "a clean and tidy version of a real room, no trash or clutter, professional interior photo, high quality, detailed",
    3: "a spotless deep-cleaned room, no stains, stickers or cables, professional interior photo, high quality, detailed",
    4: "a neatly arranged, well-organised room with open space, professional interior design, high quality, detailed",
}


def _one_line(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def _clutter_clause(clutter_list: str) -> str:
    clutter_list = clutter_list.strip()
    if not clutter_list:
        return ""
    return f"In particular, make sure these previously identified items are gone: {_one_line(clutter_list)}. "


def negative_instruction(clutter_list: str = "") -> str:
    clutter_list = _one_line(clutter_list or "")
    if not clutter_list:
        return _NEGATIVE
    return f"{_NEGATIVE}, {clutter_list}"


def compose(
    stage: int,
    clutter_list: str = "",
    is_redo: bool = False,
    scenario: Optional[str] = None,
    props: Optional[str] = None,
) -> ComposedInstruction:
    if not (FIRST_STAGE <= stage <= LAST_STAGE):
        raise ValidationError(f"Unknown stage {stage}")

    clutter = _clutter_clause(clutter_list or "")
    negative = negative_instruction(clutter_list or "")

    if stage == 1:
        return ComposedInstruction(instruction=_SCENE_ANALYSIS, negative_instruction=negative)

    if stage == 2:
        template = _BASIC_CLEANUP_INTENSIFY if is_redo else _BASIC_CLEANUP
        text = template.format(clutter=clutter)
    elif stage == 3:
        template = _DEEP_CLEANUP_INTENSIFY if is_redo else _DEEP_CLEANUP
        text = template.format(clutter=clutter)
    elif stage == 4:
        text = _LAYOUT_OPTIMIZE.format(clutter=clutter)
        if is_redo:
            text += _REDO_CLAUSE
    else:
        scenario = (scenario or "").strip()
        if not scenario:
            raise ValidationError("Missing scenario for step 5")
        props = (props or "").strip()
        props_clause = f", including: {props}" if props else ""
        text = _ADD_PROPS.format(scenario=scenario, props=props_clause, clutter=clutter)
        if is_redo:
            text += _REDO_CLAUSE

    if stage == 5:
        generation = f"a room designed for {scenario}, professional interior design, high quality, detailed"
        if props:
            generation = f"{generation}, with {props}"
    else:
        generation = _GENERATION[stage]

    return ComposedInstruction(
        instruction=text,
        negative_instruction=negative,
        generation_prompt=generation,
    )
