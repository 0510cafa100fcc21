from __future__ import annotations

from functools import lru_cache
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..config import AppConfig
from ..controller import PipelineStageController
from ..errors import ValidationError
from ..logging import get_logger, setup_logging
from ..types import ImageReference, PipelineState, StageRequest

log = get_logger(__name__)


@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    return AppConfig.from_env()


@lru_cache(maxsize=1)
def get_controller() -> PipelineStageController:
    cfg = get_config()
    setup_logging(cfg.log_level)
    return PipelineStageController.from_config(cfg)


def _parse_step(raw: Optional[str]) -> int:
    raw = (raw or "1").strip() or "1"
    try:
        return int(raw)
    except ValueError as e:
        raise ValidationError(f"Invalid step: {raw}") from e


def create_app(config: Optional[AppConfig] = None) -> FastAPI:
    cfg = config or get_config()
    app = FastAPI(title="roomrevamp", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ValidationError)
    async def _validation_error(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=exc.api_status, content=exc.to_dict())

    @app.get("/api/status")
    def status(controller: PipelineStageController = Depends(get_controller)) -> Dict[str, Any]:
        return {
            "status": "Server is running",
            "providers": [a.id for a in controller.chain.adapters],
        }

    @app.post("/api/enhance-room")
    def enhance_room(
        image: Optional[UploadFile] = File(None),
        step: Optional[str] = Form("1"),
        scenario: Optional[str] = Form(None),
        props: Optional[str] = Form(None),
        previousImageUrl: Optional[str] = Form(None),
        clutterList: Optional[str] = Form(None),
        isRedo: Optional[str] = Form(None),
        controller: PipelineStageController = Depends(get_controller),
    ) -> JSONResponse:
        stage = _parse_step(step)

        ref: Optional[ImageReference] = None
        data = image.file.read() if image is not None else b""
        if data:
            ref = ImageReference.from_bytes(data)
        elif previousImageUrl:
            ref = ImageReference.parse(previousImageUrl)

        request = StageRequest(
            stage=stage,
            image=ref,
            scenario=scenario,
            props=props,
            clutter_list=clutterList,
            is_redo=(isRedo or "").strip().lower() == "true",
        )
        state = PipelineState.restore(stage, ref, clutterList)

        try:
            outcome = controller.run_stage(request, state)
        except ValidationError:
            raise
        except Exception as e:
            log.exception(f"[api] step={stage} failed")
            return JSONResponse(status_code=500, content={"error": "Error processing image", "message": str(e)})

        return JSONResponse({"success": True, **outcome.to_dict()})

    return app


app = create_app()
