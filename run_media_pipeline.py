#!/usr/bin/env python3
"""
Main CLI entrypoint for the Media Production Pipeline.

Convenience wrapper around media_pipeline.pipelines.run_media_pipeline.
"""

import sys

from media_pipeline.pipelines.run_media_pipeline import main

if __name__ == "__main__":
    sys.exit(main())
