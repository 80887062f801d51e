"""
Workflows package for gcqc.

This package contains the concurrent analysis pipelines and their workers.
"""
from .orchestrator import run_pipeline

__all__ = ['run_pipeline']
