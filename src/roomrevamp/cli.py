from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TaskID, TextColumn, TimeElapsedColumn
from rich.table import Table

from .adapters import build_adapters
from .artifacts import RunArtifacts
from .config import AppConfig
from .controller import PipelineStageController
from .errors import ValidationError
from .logging import setup_logging
from .types import FIRST_STAGE, LAST_STAGE, ImageReference, PipelineState, StageName, StageRequest

app = typer.Typer(no_args_is_help=True, add_completion=False)
console = Console()


def parse_stages(raw: str) -> List[int]:
    """Parse `1-5`, `2,3` or `4` into an ascending list of stage numbers."""
    stages: List[int] = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        if "-" in part:
            lo, hi = part.split("-", 1)
            stages.extend(range(int(lo), int(hi) + 1))
        else:
            stages.append(int(part))
    out = sorted(set(stages))
    if not out or out[0] < FIRST_STAGE or out[-1] > LAST_STAGE:
        raise typer.BadParameter(f"stages must be within {FIRST_STAGE}-{LAST_STAGE}")
    return out


def _image_ref(photo: Optional[Path], image: Optional[str]) -> Optional[ImageReference]:
    if photo is not None:
        return ImageReference.from_bytes(photo.read_bytes())
    if image:
        return ImageReference.parse(image)
    return None


@app.command()
def run(
    photo: Path = typer.Option(..., exists=True, file_okay=True, dir_okay=False, help="Path to the room photo"),
    scenario: str = typer.Option(..., help="What the room is for (used by step 5)"),
    out: Path = typer.Option(..., help="Output folder for this run (will be created)"),
    props: Optional[str] = typer.Option(None, help="Props to add in step 5"),
    stages: str = typer.Option("1-5", help="Stages to run, e.g. 1-5 or 1,2"),
    log_level: str = typer.Option("INFO", help="Logging level (DEBUG, INFO, WARNING, ERROR)"),
):
    """Run the makeover stages sequentially on one photo."""

    setup_logging(log_level)
    cfg = AppConfig.from_env()
    selected = parse_stages(stages)

    tasks: Dict[int, TaskID] = {}
    progress = Progress(
        SpinnerColumn(),
        TextColumn("[bold]{task.description}"),
        TimeElapsedColumn(),
        console=console,
    )

    def on_event(evt: Dict[str, Any]) -> None:
        stage = evt.get("stage")
        if not isinstance(stage, int):
            return
        if evt.get("type") == "stage.start":
            tasks[stage] = progress.add_task(f"{stage}. {StageName.for_stage(stage).value}", total=1)
        elif evt.get("type") == "stage.end" and stage in tasks:
            progress.update(tasks[stage], completed=1)

    controller = PipelineStageController.from_config(cfg, on_event=on_event)
    store = RunArtifacts(out, timeout_s=cfg.request_timeout_s)
    store.save_photo(photo.read_bytes(), photo.suffix or ".png")

    ref = ImageReference.from_bytes(photo.read_bytes())
    state = PipelineState(photo=ref)
    manifest: Dict[str, Any] = {"created_at": int(time.time()), "scenario": scenario, "props": props, "stages": {}}

    with progress:
        for stage in selected:
            request = StageRequest(
                stage=stage,
                image=ref if stage == FIRST_STAGE or (stage == 2 and not state.has_outcome(1)) else None,
                scenario=scenario,
                props=props,
            )
            try:
                outcome = controller.run_stage(request, state)
            except ValidationError as e:
                console.print(f"[bold red]Step {stage}:[/bold red] {e.message}")
                store.write_manifest(manifest)
                raise typer.Exit(code=1)

            manifest["stages"][str(stage)] = store.save_outcome(stage, outcome)

    manifest["state"] = state.to_dict()
    manifest["state"]["stageImages"] = {
        k: manifest["stages"].get(k, {}).get("image_path", v) for k, v in manifest["state"]["stageImages"].items()
    }
    manifest_path = store.write_manifest(manifest)

    console.print("\n[bold green]Done.[/bold green]")
    if state.clutter_list:
        console.print(f"Clutter list: {state.clutter_list}")
    for stage, entry in manifest["stages"].items():
        flag = " [yellow](degraded)[/yellow]" if entry.get("degraded") else ""
        flag += " [yellow](simulated)[/yellow]" if entry.get("simulated") else ""
        console.print(f"Step {stage}{flag}: {entry.get('image_path') or entry.get('analysis_path') or entry.get('imageUrl')}")
    console.print(f"Manifest: {manifest_path}")


@app.command()
def stage(
    stage: int = typer.Option(..., min=FIRST_STAGE, max=LAST_STAGE, help="Stage number (1-5)"),
    photo: Optional[Path] = typer.Option(None, exists=True, dir_okay=False, help="Photo (steps 1-2) or previous image file"),
    image: Optional[str] = typer.Option(None, help="Previous step image as URL or data URI"),
    scenario: Optional[str] = typer.Option(None),
    props: Optional[str] = typer.Option(None),
    clutter: Optional[str] = typer.Option(None, help="Clutter list from step 1"),
    redo: bool = typer.Option(False, help="Re-run the stage with an intensified instruction"),
    log_level: str = typer.Option("INFO"),
):
    """Run a single stage and print the JSON result."""

    setup_logging(log_level)
    controller = PipelineStageController.from_config(AppConfig.from_env())
    try:
        ref = _image_ref(photo, image)
        state = PipelineState.restore(stage, ref, clutter)
        outcome = controller.run_stage(
            StageRequest(stage=stage, image=ref, scenario=scenario, props=props, clutter_list=clutter, is_redo=redo),
            state,
        )
    except ValidationError as e:
        console.print(f"[bold red]Error:[/bold red] {e.message}")
        raise typer.Exit(code=1)

    console.print_json(json.dumps({"success": True, **outcome.to_dict()}, ensure_ascii=False))


@app.command()
def providers():
    """List the providers registered from the current environment."""

    cfg = AppConfig.from_env()
    adapters = build_adapters(cfg)
    table = Table(title="Registered providers")
    table.add_column("id")
    table.add_column("label")
    table.add_column("capabilities")
    table.add_column("priority", justify="right")
    for a in sorted(adapters, key=lambda a: a.descriptor.priority):
        caps = ", ".join(sorted(c.value for c in a.descriptor.capabilities))
        table.add_row(a.id, a.descriptor.label, caps, str(a.descriptor.priority))
        a.close()
    console.print(table)
    if not adapters:
        console.print("[yellow]No API key configured; stages will return simulated results.[/yellow]")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1"),
    port: int = typer.Option(3000),
    log_level: str = typer.Option("INFO"),
):
    """Serve the HTTP API with uvicorn."""

    import uvicorn

    setup_logging(log_level)
    uvicorn.run("roomrevamp.api.app:app", host=host, port=port, log_level=log_level.lower())
