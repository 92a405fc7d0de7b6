"""Render probe backed by the dockerized mermaid-cli."""
from __future__ import annotations

import asyncio
import logging
import subprocess
import tempfile
from pathlib import Path
from typing import List

from autodiagram.render.probe import RenderOutcome, check_markup
from autodiagram.utils.config import settings


logger = logging.getLogger(__name__)


def run_docker_renderer(image: str, workdir: Path, command: List[str]) -> subprocess.CompletedProcess:
    cmd = ["docker", "run", "--rm", "-v", f"{workdir}:/data", "-w", "/data", image] + command
    return subprocess.run(cmd, capture_output=True, text=True)


def render_mermaid_svg(markup: str, image: str) -> RenderOutcome:
    with tempfile.TemporaryDirectory() as tmp_dir:
        workdir = Path(tmp_dir)
        (workdir / "input.mmd").write_text(markup, encoding="utf-8")
        output_path = workdir / "output.svg"
        completed = run_docker_renderer(image, workdir, ["-i", "input.mmd", "-o", "output.svg"])
        if completed.returncode != 0 or not output_path.exists():
            error = (completed.stderr or completed.stdout or "").strip() or "mermaid-cli produced no output"
            return RenderOutcome(ok=False, error=error)
        return RenderOutcome(ok=True, svg=output_path.read_text(encoding="utf-8"))


class MermaidCliRenderProbe:
    def __init__(self, image: str | None = None):
        self.image = image or settings.mermaid_renderer_image

    async def probe(self, markup: str) -> RenderOutcome:
        # Skip the container round-trip for markup that cannot parse.
        error = check_markup(markup)
        if error:
            return RenderOutcome(ok=False, error=error)
        try:
            return await asyncio.to_thread(render_mermaid_svg, markup, self.image)
        except OSError as exc:
            logger.exception("mermaid-cli renderer unavailable", extra={"image": self.image})
            return RenderOutcome(ok=False, error=f"Renderer unavailable: {exc}")
