"""Render probe exports."""
from __future__ import annotations

from autodiagram.render.mermaid_cli import MermaidCliRenderProbe
from autodiagram.render.probe import HeaderRenderProbe, RenderOutcome, RenderProbe, check_markup
from autodiagram.utils.config import settings


def create_render_probe(kind: str | None = None) -> RenderProbe:
    kind = kind or settings.render_probe
    if kind == "mermaid-cli":
        return MermaidCliRenderProbe()
    return HeaderRenderProbe()


__all__ = [
    "HeaderRenderProbe",
    "MermaidCliRenderProbe",
    "RenderOutcome",
    "RenderProbe",
    "check_markup",
    "create_render_probe",
]
