"""Monthly process workflow: step graph, analysis and templates."""

from .models import CriticalPath, StepStatus, WorkflowProgress, WorkflowStep, WorkflowTask
from .graph import StepGraph
from . import analyzer
from .template import build_steps, default_template, load_template

__all__ = [
    "CriticalPath",
    "StepStatus",
    "WorkflowProgress",
    "WorkflowStep",
    "WorkflowTask",
    "StepGraph",
    "analyzer",
    "build_steps",
    "default_template",
    "load_template",
]
