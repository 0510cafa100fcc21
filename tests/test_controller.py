import pytest

from conftest import FakeAdapter, image_reply_body, text_reply_body
from roomrevamp.chain import FallbackChain
from roomrevamp.controller import PipelineStageController
from roomrevamp.errors import ProviderError, ValidationError
from roomrevamp.images import load_image_bytes
from roomrevamp.poller import AsyncTaskPoller
from roomrevamp.types import Capability, ImageReference, PipelineState, StageRequest

PHOTO = ImageReference.from_bytes(b"photo-bytes")


def _controller(*adapters, events=None):
    chain = FallbackChain(list(adapters), poller=AsyncTaskPoller(sleep=lambda s: None))
    return PipelineStageController(
        chain,
        load_image=lambda ref: ref.data or (ref.url or ref.data_uri or "").encode(),
        on_event=events.append if events is not None else None,
    )


def _analysis_adapter(text):
    a = FakeAdapter("qwen", capabilities=[Capability.TEXT_ANALYSIS, Capability.IMAGE_EDIT])
    a.steps = [a.reply(text_reply_body(text))]
    return a


def test_stage1_clutter_flows_into_stage2():
    qwen = _analysis_adapter("【场景概述】bedroom\n【杂乱物品清单】bottles, cups")
    qwen.steps.append(qwen.reply(image_reply_body("https://cdn/2.png")))
    ctrl = _controller(qwen)
    state = PipelineState()

    out1 = ctrl.run_stage(StageRequest(stage=1, image=PHOTO), state)
    assert out1.extracted_clutter_list == "bottles, cups"
    assert state.clutter_list == "bottles, cups"
    assert state.photo == PHOTO

    out2 = ctrl.run_stage(StageRequest(stage=2), state)
    assert out2.image_url == "https://cdn/2.png"
    instruction = qwen.calls[1]["instruction"].instruction
    assert "bottles" in instruction and "cups" in instruction
    assert qwen.calls[1]["image_bytes"] == b"photo-bytes"
    assert state.stage_images[2] == "https://cdn/2.png"


def test_stage3_uses_previous_stage_image():
    edit = FakeAdapter("edit")
    edit.steps = [edit.reply(image_reply_body("https://cdn/3.png"))]
    seen = []

    def loader(ref):
        seen.append(ref)
        return b"stage2-bytes"

    ctrl = PipelineStageController(FallbackChain([edit]), load_image=loader)
    state = PipelineState(photo=PHOTO, stage_images={2: "https://cdn/2.png"}, completed={1, 2})
    ctrl.run_stage(StageRequest(stage=3), state)
    assert seen == [ImageReference(url="https://cdn/2.png")]
    assert edit.calls[0]["image_bytes"] == b"stage2-bytes"


def test_explicit_request_image_wins():
    edit = FakeAdapter("edit")
    edit.steps = [edit.reply(image_reply_body("https://cdn/4.png"))]
    ctrl = _controller(edit)
    state = PipelineState(photo=PHOTO, stage_images={3: "https://cdn/3.png"}, completed={1, 2, 3})
    ctrl.run_stage(StageRequest(stage=4, image=ImageReference.from_bytes(b"explicit")), state)
    assert edit.calls[0]["image_bytes"] == b"explicit"


def test_request_clutter_overrides_state():
    edit = FakeAdapter("edit")
    edit.steps = [edit.reply(image_reply_body("https://cdn/2.png"))]
    state = PipelineState(photo=PHOTO, clutter_list="old stuff", completed={1})
    _controller(edit).run_stage(StageRequest(stage=2, clutter_list="pizza box"), state)
    instruction = edit.calls[0]["instruction"].instruction
    assert "pizza box" in instruction
    assert "old stuff" not in instruction


def test_stage5_without_scenario_fails_before_provider():
    edit = FakeAdapter("edit")
    state = PipelineState(photo=PHOTO, stage_images={4: "https://cdn/4.png"}, completed={1, 2, 3, 4})
    with pytest.raises(ValidationError, match="scenario"):
        _controller(edit).run_stage(StageRequest(stage=5), state)
    assert edit.calls == []


def test_invalid_stage_number():
    with pytest.raises(ValidationError):
        _controller(FakeAdapter("edit")).run_stage(StageRequest(stage=0), PipelineState())


def test_stage1_without_photo():
    with pytest.raises(ValidationError):
        _controller(FakeAdapter("edit")).run_stage(StageRequest(stage=1), PipelineState())


def test_missing_prerequisite():
    edit = FakeAdapter("edit")
    with pytest.raises(ValidationError, match="Step 2"):
        _controller(edit).run_stage(StageRequest(stage=3), PipelineState(photo=PHOTO, completed={1}))
    assert edit.calls == []


def test_unloadable_previous_image():
    edit = FakeAdapter("edit")
    ref = ImageReference(data_uri="data:image/png,not-base64")
    with pytest.raises(ValidationError, match="Failed to load previous image"):
        PipelineStageController(FallbackChain([edit]), load_image=load_image_bytes).run_stage(
            StageRequest(stage=3, image=ref), PipelineState()
        )


def test_redo_changes_instruction_and_keeps_input():
    edit = FakeAdapter("edit")
    edit.steps = [edit.reply(image_reply_body("https://cdn/a.png")), edit.reply(image_reply_body("https://cdn/b.png"))]
    ctrl = _controller(edit)
    state = PipelineState(photo=PHOTO, completed={1})

    ctrl.run_stage(StageRequest(stage=2), state)
    ctrl.run_stage(StageRequest(stage=2, is_redo=True), state)
    assert edit.calls[0]["image_bytes"] == edit.calls[1]["image_bytes"] == b"photo-bytes"
    assert edit.calls[0]["instruction"].instruction != edit.calls[1]["instruction"].instruction
    assert state.stage_images[2] == "https://cdn/b.png"


def test_degraded_outcome_is_not_merged():
    edit = FakeAdapter("edit", steps=[ProviderError("edit", "down")])
    state = PipelineState(photo=PHOTO, stage_images={2: "https://cdn/2.png"}, completed={1, 2})
    out = _controller(edit).run_stage(StageRequest(stage=3), state)
    assert out.degraded
    assert 3 not in state.completed
    assert 3 not in state.stage_images


def test_merge_invalidates_later_stages():
    edit = FakeAdapter("edit")
    edit.steps = [edit.reply(image_reply_body("https://cdn/new2.png"))]
    state = PipelineState(
        photo=PHOTO,
        stage_images={2: "https://cdn/2.png", 3: "https://cdn/3.png"},
        completed={1, 2, 3},
    )
    _controller(edit).run_stage(StageRequest(stage=2, is_redo=True), state)
    assert state.completed == {1, 2}
    assert state.stage_images == {2: "https://cdn/new2.png"}


def test_no_adapters_returns_simulated():
    events = []
    ctrl = _controller(events=events)
    state = PipelineState()

    out1 = ctrl.run_stage(StageRequest(stage=1, image=PHOTO), state)
    assert out1.simulated
    out2 = ctrl.run_stage(StageRequest(stage=2), state)
    assert out2.simulated
    assert out2.to_dict()["simulated"] is True
    assert state.completed == {1, 2}
    assert [e["type"] for e in events] == ["stage.start", "stage.end", "stage.start", "stage.end"]


def test_no_capable_adapter_returns_simulated():
    edit_only = FakeAdapter("edit", capabilities=[Capability.IMAGE_EDIT])
    out = _controller(edit_only).run_stage(StageRequest(stage=1, image=PHOTO), PipelineState())
    assert out.simulated
    assert edit_only.calls == []


def test_new_photo_resets_state():
    qwen = _analysis_adapter("【杂乱物品清单】socks")
    state = PipelineState(photo=PHOTO, clutter_list="old", stage_images={2: "https://cdn/2.png"}, completed={1, 2})
    new_photo = ImageReference.from_bytes(b"other-photo")
    _controller(qwen).run_stage(StageRequest(stage=1, image=new_photo), state)
    assert state.photo == new_photo
    assert state.clutter_list == "socks"
    assert state.completed == {1}


def test_event_handler_errors_do_not_break_stage():
    def boom(evt):
        raise RuntimeError("handler bug")

    ctrl = PipelineStageController(FallbackChain([]), on_event=boom)
    assert ctrl.run_stage(StageRequest(stage=1, image=PHOTO), PipelineState()).simulated
