"""Monthly process template.

Every batch's workflow is instantiated from one template: either the
built-in monthly close below or a YAML file named by
``CLOSEFLOW_WORKFLOW_TEMPLATE_PATH``.

YAML layout::

    steps:
      - id: data-load
        name: Data Load
        estimated_days: 2
        due_offset_days: 2
        tasks:
          - Load Bloomberg data
          - {name: Load Custodian data, link: /batches/current/portfolio-files}
      - id: validation
        name: Validation
        dependencies: [data-load]
"""

import os
from datetime import date, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from closeflow.core.errors import InvalidGraph
from .models import StepStatus, WorkflowStep, WorkflowTask


DEFAULT_MONTHLY_TEMPLATE: List[Dict[str, Any]] = [
    {
        "id": "data-load",
        "name": "Data Load",
        "description": "Import portfolio, custodian and market data files for the month",
        "estimated_days": 2,
        "due_offset_days": 2,
        "tasks": [
            {"name": "Load Bloomberg data", "link": "/market-data/index-prices"},
            {"name": "Load Custodian data", "link": "/batches/current/portfolio-files"},
            {"name": "Load NAV files", "link": "/batches/current/other-files"},
        ],
    },
    {
        "id": "validation",
        "name": "Validation",
        "description": "Resolve file faults and validation errors",
        "dependencies": ["data-load"],
        "estimated_days": 1,
        "due_offset_days": 3,
        "tasks": ["Review file faults", "Resolve validation errors"],
    },
    {
        "id": "market-data",
        "name": "Market Data Review",
        "description": "Check index prices, betas and durations",
        "dependencies": ["data-load"],
        "estimated_days": 1,
        "due_offset_days": 3,
        "tasks": ["Review index prices", "Review betas and durations"],
    },
    {
        "id": "data-confirmation",
        "name": "Data Confirmation",
        "description": "Confirm file, record and portfolio counts",
        "dependencies": ["validation"],
        "estimated_days": 1,
        "due_offset_days": 4,
        "tasks": [{"name": "Review Data Confirmation", "link": "/data-confirmation"}],
    },
    {
        "id": "calculations",
        "name": "Calculations",
        "description": "Run NAV, performance, attribution and risk calculations",
        "dependencies": ["data-confirmation", "market-data"],
        "estimated_days": 2,
        "due_offset_days": 6,
        "tasks": ["Run calculations", "Review calculation errors"],
    },
    {
        "id": "report-generation",
        "name": "Report Generation",
        "description": "Produce the monthly report pack",
        "dependencies": ["calculations"],
        "estimated_days": 1,
        "due_offset_days": 7,
        "tasks": ["Generate reports", "Spot-check report output"],
    },
    {
        "id": "approvals",
        "name": "Approvals",
        "description": "Level 1, 2 and 3 sign-off",
        "dependencies": ["report-generation"],
        "estimated_days": 3,
        "due_offset_days": 10,
        "tasks": [
            {"name": "Level 1 approval", "link": "/approvals/level-1"},
            {"name": "Level 2 approval", "link": "/approvals/level-2"},
            {"name": "Level 3 approval", "link": "/approvals/level-3"},
        ],
    },
    {
        "id": "publication",
        "name": "Publication",
        "description": "Distribute the approved reports",
        "dependencies": ["approvals"],
        "estimated_days": 1,
        "due_offset_days": 11,
        "tasks": ["Publish reports"],
    },
]


def parse_step_definition(definition: Dict[str, Any], start_date: Optional[date] = None) -> WorkflowStep:
    """Build a WorkflowStep from a template mapping.

    ``due_offset_days`` is resolved against ``start_date`` (the batch date)
    when the definition carries no explicit ``due_date``.
    """
    try:
        step_id = str(definition["id"])
        name = str(definition["name"])
    except KeyError as e:
        raise InvalidGraph(f"Workflow step definition is missing {e.args[0]!r}") from None

    tasks = []
    for position, task_def in enumerate(definition.get("tasks") or [], start=1):
        if isinstance(task_def, str):
            task_def = {"name": task_def}
        if not task_def.get("name"):
            raise InvalidGraph(f"Task {position} of step {step_id} has no name", [step_id])
        tasks.append(WorkflowTask(
            id=str(task_def.get("id") or f"{step_id}-task-{position}"),
            name=str(task_def["name"]),
            completed=bool(task_def.get("completed", False)),
            link=task_def.get("link"),
        ))

    due_date = definition.get("due_date")
    if isinstance(due_date, str):
        due_date = date.fromisoformat(due_date)
    if due_date is None and start_date is not None and definition.get("due_offset_days") is not None:
        due_date = start_date + timedelta(days=int(definition["due_offset_days"]))

    return WorkflowStep(
        id=step_id,
        name=name,
        description=definition.get("description", ""),
        status=StepStatus(definition.get("status", StepStatus.NOT_STARTED.value)),
        dependencies=tuple(str(d) for d in definition.get("dependencies") or ()),
        owner=definition.get("owner"),
        due_date=due_date,
        estimated_days=definition.get("estimated_days"),
        tasks=tasks,
    )


def build_steps(definitions: List[Dict[str, Any]], start_date: Optional[date] = None) -> List[WorkflowStep]:
    return [parse_step_definition(d, start_date) for d in definitions]


def default_template() -> List[Dict[str, Any]]:
    return [dict(d) for d in DEFAULT_MONTHLY_TEMPLATE]


def load_template(template_path: Union[str, Path]) -> List[Dict[str, Any]]:
    """Load step definitions from a YAML file.

    Raises:
        FileNotFoundError: If the template file doesn't exist
        yaml.YAMLError: If the file is invalid YAML
        InvalidGraph: If the document has no step list
    """
    template_file = Path(template_path)
    if not template_file.exists():
        raise FileNotFoundError(f"Workflow template not found: {template_path}")

    with template_file.open("r") as f:
        document = yaml.safe_load(f)

    if isinstance(document, dict):
        document = document.get("steps")
    if not isinstance(document, list):
        raise InvalidGraph(f"Workflow template {template_path} must define a list of steps")

    return _expand_env_vars(document)


def _expand_env_vars(obj: Any) -> Any:
    """Recursively expand environment variables in template values."""
    if isinstance(obj, dict):
        return {key: _expand_env_vars(value) for key, value in obj.items()}
    elif isinstance(obj, list):
        return [_expand_env_vars(item) for item in obj]
    elif isinstance(obj, str):
        return os.path.expandvars(obj)
    else:
        return obj
