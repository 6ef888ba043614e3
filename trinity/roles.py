"""Agent role derivation for the proposal phase."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from trinity.schemas.proposals import AgentRole

BASELINE_ROLES: tuple[str, ...] = (AgentRole.ENGINEER, AgentRole.DEVOPS, AgentRole.QA)
MAX_ROLES = 5


def role_hints(structured_input: Mapping[str, Any] | None) -> list[str]:
    """Collect role names embedded in structured input.

    Recognises agent nodes of a graph (``nodes[*].kind == "agent"`` with a
    ``data.role``) and a flat ``roles`` list.
    """
    if not structured_input:
        return []
    hints: list[str] = []
    for node in structured_input.get("nodes") or []:
        if not isinstance(node, Mapping) or node.get("kind") != "agent":
            continue
        data = node.get("data")
        if isinstance(data, Mapping) and data.get("role"):
            hints.append(str(data["role"]))
    for role in structured_input.get("roles") or []:
        if role:
            hints.append(str(role))
    return hints


def derive_roles(
    question: str,
    structured_input: Mapping[str, Any] | None = None,
    *,
    max_roles: int = MAX_ROLES,
) -> list[str]:
    """Pick agent roles for a question.

    Starts from engineer, devops, qa; "architecture" puts an architect
    first, "safety" adds a critic, "data" adds a data engineer. Hints
    from *structured_input* follow. Duplicates keep their first position
    and the list is cut at *max_roles*.
    """
    text = question.lower()
    roles = [str(r) for r in BASELINE_ROLES]
    if "architecture" in text:
        roles.insert(0, AgentRole.ARCHITECT.value)
    if "safety" in text:
        roles.append(AgentRole.CRITIC.value)
    if "data" in text:
        roles.append(AgentRole.DATA_ENGINEER.value)
    roles.extend(role_hints(structured_input))

    unique = list(dict.fromkeys(roles))
    return unique[:max_roles]
