"""Prompt construction for generation and refinement calls.

Every prompt starts from the same base context: the startup's capsule
proposal followed by its current level in each readiness dimension.
"""
from __future__ import annotations

from collections.abc import Iterable

from accelerator.models import (
    READINESS_ABBREVIATIONS, CapsuleProposal, ChatMessage, Initiative, ReadinessType,
    Roadblock, Rns, StartupReadinessLevel, StartupRNA,
)

REFINE_SEPARATOR = "========="

# Dimension order used in the base context
CONTEXT_ORDER = (
    ReadinessType.TECHNOLOGY, ReadinessType.MARKET, ReadinessType.ACCEPTANCE,
    ReadinessType.ORGANIZATIONAL, ReadinessType.REGULATORY, ReadinessType.INVESTMENT,
)

BASE_CONTEXT_TEMPLATE = """\
Given these data:
Acceleration Proposal Title: {title}
Duration: 3 months
I. About the startup
A. Startup Description
{description}
B. Problem Statement
{problem_statement}
C. Target Market
{target_market}
D. Solution Description
{solution_description}
II. About the Proposed Acceleration
A. Objectives
{objectives}
B. Scope of The Proposal
{scope}
C. Methodology and Expected Outputs
{methodology}
Initial Readiness Level:
{levels}
"""

RNA_PROMPT = """\
{base}

TASK: Write a readiness and needs assessment (RNA) for each of these readiness types
at the startup's current level:
{targets}

Requirement: The response should be in a JSON format.
JSON format: [{{"readiness_level_type": "", "rna": ""}}]
Requirement note:
- readiness_level_type is one of: {types}
- rna has a max length of 500
"""

TASK_PROMPT = """\
{base}

This is the RNA for {readiness_type} Readiness Type Of Startup:
Readiness Level {level}: {rna}

TASK: Create {count} Short-term tasks for the startup's personalized learning path based on the above RNA.
Requirement: The response should be in a JSON format.
JSON format: [{{"target_level": (int), "description": ""}}]
Requirement note:
- target_level is from 1-9
- the tasks should raise the {readiness_type} readiness level above the initial level
- target_level should not exceed 9
- description has a max length of 500
"""

INITIATIVE_PROMPT = """\
{base}

This is the task (RNS) the initiatives belong to:
{readiness_type} task targeting level {target_level}: {description}

TASK: Create {count} initiatives that carry out the task above.
Requirement: The response should be in a JSON format.
JSON format: [{{"description": "", "measures": "", "targets": "", "remarks": ""}}]
Requirement note:
- description has a max length of 400
- measures, targets and remarks have a max length of 150
"""

ROADBLOCK_PROMPT = """\
{base}

These are the startup's active tasks:
{tasks}

These are the startup's active initiatives:
{initiatives}

TASK: Identify {count} roadblocks that could keep the startup from completing the work above.
Requirement: The response should be in a JSON format.
It should consist of description, fix, and riskNumber which should be an integer from 1 to 5.
JSON format: [{{"description": "", "fix": "", "riskNumber": (number)}}]
Requirement note:
- description and fix have 500 max length
"""

REFINE_PROMPT = """\
{base}

This is the {kind} to refine:
{item}

Conversation so far:
{history}

User request: {request}

{instructions}
"""

REFINE_JSON_INSTRUCTIONS = """\
Please refine the {kind} details according to the user's instructions.
Respond with a JSON object containing ONLY the requested refinements. If the user
did not name a field, refine all fields. Allowed keys: {keys}.
After the JSON, write '{separator}' on a new line, then a brief commentary
(1-2 sentences) explaining your changes.
"""

REFINE_TEXT_INSTRUCTIONS = """\
Please rewrite the task description according to the user's instructions.
Write only the refined description, then '{separator}' on a new line, then a
brief commentary (1-2 sentences) explaining your changes.
"""

REFINE_KEYS: dict[str, tuple[str, ...]] = {
    "initiative": ("refinedDescription", "refinedMeasures", "refinedTargets", "refinedRemarks"),
    "roadblock": ("refinedDescription", "refinedFix"),
}


def current_levels(levels: Iterable[StartupReadinessLevel]) -> dict[str, int]:
    """Map readiness type -> current level number."""
    return {row.readiness_type: row.readiness_level.level for row in levels}


def build_base_context(proposal: CapsuleProposal, levels: Iterable[StartupReadinessLevel]) -> str:
    by_type = current_levels(levels)
    level_lines = "\n".join(
        f"{READINESS_ABBREVIATIONS[t]} {by_type.get(t.value, 0)}" for t in CONTEXT_ORDER
    )
    return BASE_CONTEXT_TEMPLATE.format(
        title=proposal.title, description=proposal.description,
        problem_statement=proposal.problem_statement, target_market=proposal.target_market,
        solution_description=proposal.solution_description, objectives=proposal.objectives,
        scope=proposal.scope, methodology=proposal.methodology, levels=level_lines,
    )


def rna_prompt(base: str, missing: Iterable[StartupReadinessLevel]) -> str:
    targets = "\n".join(f"- {row.readiness_type}: level {row.readiness_level.level}" for row in missing)
    types = ", ".join(t.value for t in ReadinessType)
    return RNA_PROMPT.format(base=base, targets=targets, types=types)


def task_prompt(base: str, rna: StartupRNA, count: int) -> str:
    return TASK_PROMPT.format(
        base=base, readiness_type=rna.readiness_level.readiness_type,
        level=rna.readiness_level.level, rna=rna.rna, count=count,
    )


def initiative_prompt(base: str, task: Rns, count: int) -> str:
    return INITIATIVE_PROMPT.format(
        base=base, readiness_type=task.readiness_type or "General",
        target_level=task.target_level.level if task.target_level else "n/a",
        description=task.description, count=count,
    )


def roadblock_prompt(base: str, tasks: list[Rns], initiatives: list[Initiative], count: int) -> str:
    task_lines = "\n".join(f"- [{t.readiness_type}] {t.description}" for t in tasks) or "- none"
    initiative_lines = "\n".join(f"- {i.description}" for i in initiatives) or "- none"
    return ROADBLOCK_PROMPT.format(base=base, tasks=task_lines, initiatives=initiative_lines, count=count)


def describe_item(item: Rns | Initiative | Roadblock) -> str:
    if isinstance(item, Initiative):
        return (
            f"Description: {item.description}\nMeasures: {item.measures}\n"
            f"Targets: {item.targets}\nRemarks: {item.remarks}"
        )
    if isinstance(item, Roadblock):
        return f"Description: {item.description}\nFix: {item.fix}\nRisk Level: {item.risk_number}"
    return f"Readiness Type: {item.readiness_type}\nDescription: {item.description}"


def refine_prompt(
    base: str, item: Rns | Initiative | Roadblock, history: list[ChatMessage], request: str,
) -> str:
    lines = [f"{m.role}: {m.content}" for m in history]
    if item.kind in REFINE_KEYS:
        instructions = REFINE_JSON_INSTRUCTIONS.format(
            kind=item.kind, keys=", ".join(REFINE_KEYS[item.kind]), separator=REFINE_SEPARATOR,
        )
    else:
        instructions = REFINE_TEXT_INSTRUCTIONS.format(separator=REFINE_SEPARATOR)
    return REFINE_PROMPT.format(
        base=base, kind=item.kind, item=describe_item(item),
        history="\n".join(lines) or "(none)", request=request, instructions=instructions,
    )
