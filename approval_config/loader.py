"""
Settings Loader (``approval_config.loader``).

Responsibility
--------------
Loads the YAML settings file and parses it into the frozen dataclasses of
``approval_config.schema``.  Runtime callers go through
``approval_config.get_active_settings()``; this module is its tooling.

Invariants enforced
-------------------
* All parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for required fields.
* Seed workflows pass the same stage validation as administrative edits.
* ``compute_checksum`` is deterministic for identical input.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``ValueError`` naming the file.
* Missing required keys  -> ``KeyError`` propagates.
* Unknown subject type or bad stage list  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from approval_config.schema import ApprovalSettings, DatabaseSettings, LoggingSettings
from approval_kernel.domain.approval import (
    ApprovalStage,
    SubjectType,
    WorkflowDefinition,
    validate_stages,
)
from approval_kernel.exceptions import InvalidWorkflowDefinitionError


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        ValueError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"{path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")
    return data


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    """Parse the ``database`` section."""
    return DatabaseSettings(
        url=data["url"],
        echo=bool(data.get("echo", False)),
        pool_size=int(data.get("pool_size", 10)),
        max_overflow=int(data.get("max_overflow", 10)),
    )


def parse_logging(data: dict[str, Any]) -> LoggingSettings:
    """Parse the ``logging`` section."""
    level = str(data.get("level", "INFO")).upper()
    if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        raise ValueError(f"Unknown logging level {level!r}")
    return LoggingSettings(level=level)


def parse_workflow(data: dict[str, Any]) -> WorkflowDefinition:
    """
    Parse one seed workflow.

    Stages use the persisted document shape
    ``{stage, roleName, approverId}``.

    Raises:
        KeyError: if ``owner_key``, ``subject_type`` or a stage field is missing.
        ValueError: if the subject type is unknown or the stages are not
            contiguous from 1.
    """
    owner_key = str(data["owner_key"])
    try:
        subject_type = SubjectType(data["subject_type"])
    except ValueError:
        raise ValueError(
            f"Workflow {owner_key}: unknown subject type {data['subject_type']!r}"
        ) from None

    stages = tuple(
        sorted(
            (ApprovalStage.from_document(s) for s in data.get("stages") or []),
            key=lambda s: s.sequence_number,
        )
    )
    try:
        validate_stages(owner_key, stages)
    except InvalidWorkflowDefinitionError as exc:
        raise ValueError(str(exc)) from exc

    return WorkflowDefinition(
        owner_key=owner_key,
        subject_type=subject_type,
        stages=stages,
    )


def parse_settings(data: dict[str, Any], source: str = "") -> ApprovalSettings:
    """
    Parse a whole settings document.

    Sections are optional; a missing section takes the schema defaults.
    Two seed workflows for the same owner and subject type are rejected.
    """
    database = parse_database(data["database"]) if data.get("database") else DatabaseSettings()
    logging_settings = parse_logging(data["logging"]) if data.get("logging") else LoggingSettings()
    workflows = tuple(parse_workflow(w) for w in data.get("workflows") or [])

    seen: set[tuple[str, SubjectType]] = set()
    for workflow in workflows:
        key = (workflow.owner_key, workflow.subject_type)
        if key in seen:
            raise ValueError(
                f"Duplicate {workflow.subject_type.value} workflow for {workflow.owner_key}"
            )
        seen.add(key)

    return ApprovalSettings(
        database=database,
        logging=logging_settings,
        workflows=workflows,
        checksum=compute_checksum(data),
        source=source,
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
