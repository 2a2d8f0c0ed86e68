"""ucw-stage - resumable Windows build stage for ungoogled-chromium CI.

This package drives one stage of the multi-stage Windows build: it restores
an in-progress snapshot, runs the build driver, and either packages a
portable distribution or snapshots the partial build for the next stage.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
