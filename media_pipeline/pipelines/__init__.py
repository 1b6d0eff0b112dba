"""Pipeline entrypoints for the media production pipeline."""

from media_pipeline.pipelines.background import launch_in_background, start_asset_generation, start_render
from media_pipeline.pipelines.run_media_pipeline import main, run_media_pipeline

__all__ = ["launch_in_background", "main", "run_media_pipeline", "start_asset_generation", "start_render"]
