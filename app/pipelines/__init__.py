"""Pipeline orchestrators for Short Video Maker."""

from app.pipelines.render_pipeline import RenderPipeline, RenderResult

__all__ = ["RenderPipeline", "RenderResult"]
