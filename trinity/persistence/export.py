"""Ritual export formatters (JSON and Markdown)."""

from __future__ import annotations

from trinity.schemas.ritual import RitualPayload


def export_json(payload: RitualPayload) -> str:
    """Pretty-printed JSON of the full payload."""
    return payload.model_dump_json(indent=2)


def export_markdown(payload: RitualPayload) -> str:
    """Human-readable Markdown report of a ritual.

    Sections cover metadata, proposals, the consensus seal with every
    vote, the execution result, and the cost ledger.
    """
    snapshot = payload.decision_snapshot
    lines: list[str] = []

    lines.append(f"# Ritual Report: {payload.decision_id}")
    lines.append("")

    lines.append("## Metadata")
    lines.append("")
    lines.append(f"- **Question:** {payload.question}")
    lines.append(f"- **Question Hash:** `{payload.question_hash}`")
    lines.append(f"- **Status:** {payload.status.value}")
    lines.append(f"- **Created:** {payload.created_at.isoformat()}")
    if payload.completed_at:
        lines.append(f"- **Completed:** {payload.completed_at.isoformat()}")
    lines.append(f"- **Consensus Score:** {payload.consensus_score:.3f}")
    lines.append(f"- **Total Cost:** ${payload.cost_breakdown.total_cost_usd:.4f}")
    if payload.archive_location:
        lines.append(f"- **Archive:** `{payload.archive_location}`")
    if payload.error:
        lines.append(f"- **Error:** {payload.error}")
    lines.append("")

    proposals = snapshot.get("proposals") or []
    if proposals:
        winner_id = (snapshot.get("winner") or {}).get("agent_id")
        lines.append("## Proposals")
        lines.append("")
        lines.append("| Role | Agent | Confidence | Winner |")
        lines.append("|------|-------|------------|--------|")
        for p in proposals:
            mark = "yes" if p.get("agent_id") == winner_id else ""
            lines.append(
                f"| {p.get('agent_role', '')} | `{p.get('agent_id', '')}` | "
                f"{float(p.get('confidence', 0.0)):.2f} | {mark} |"
            )
        lines.append("")
        guard = snapshot.get("guard_check")
        if guard:
            status = "passed" if guard.get("valid") else "FAILED"
            lines.append(f"**Guard:** {status} ({guard.get('reason', '')})")
            lines.append("")

    consensus = snapshot.get("consensus")
    if consensus:
        lines.append("## Consensus Seal")
        lines.append("")
        lines.append(f"- **Verdict:** {consensus.get('verdict', '')}")
        lines.append(f"- **Normalized Score:** {consensus.get('normalized_score', 0.0):.3f}")
        lines.append(f"- **Confidence:** {consensus.get('confidence', 0.0):.3f}")
        for flag in consensus.get("epistemic_frontier", []):
            lines.append(f"- **Frontier:** {flag}")
        lines.append("")
        votes = consensus.get("votes") or []
        if votes:
            lines.append("| Throne | Answer | Confidence | Weight | Responded |")
            lines.append("|--------|--------|------------|--------|-----------|")
            for v in votes:
                lines.append(
                    f"| {v.get('voter_name', v.get('voter_id'))} | {v.get('answer')} | "
                    f"{float(v.get('confidence', 0.0)):.2f} | {v.get('weight')} | "
                    f"{'yes' if v.get('responded', True) else 'no'} |"
                )
            lines.append("")

    result = payload.execution_result
    if result:
        lines.append("## Execution")
        lines.append("")
        lines.append(f"- **Artifact:** {result.artifact_type} `{result.artifact_url}`")
        lines.append(f"- **Hash:** `{result.artifact_hash}`")
        lines.append(f"- **Time:** {result.execution_time_ms} ms")
        artifacts = snapshot.get("artifacts") or []
        if len(artifacts) > 1:
            lines.append(f"- **Other Artifacts:** {len(artifacts) - 1}")
        lines.append("")

    breakdown = payload.cost_breakdown
    if breakdown.entries:
        lines.append("## Costs")
        lines.append("")
        lines.append("| Phase | Operation | Provider | Cost |")
        lines.append("|-------|-----------|----------|------|")
        for entry in breakdown.entries:
            lines.append(
                f"| {entry.phase} | {entry.operation} | {entry.provider} | "
                f"${entry.cost_usd:.4f} |"
            )
        lines.append("")

    if payload.notes:
        lines.append("## Notes")
        lines.append("")
        for note in payload.notes:
            lines.append(f"- {note}")
        lines.append("")

    lines.append("---")
    lines.append("*Generated by Trinity*")
    lines.append("")

    return "\n".join(lines)
