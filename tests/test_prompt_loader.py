"""Tests for trinity.prompts: Jinja2 prompt template loader."""

import pytest

from trinity.prompts import render_prompt


class TestRenderPrompt:
    def test_vote_template(self):
        result = render_prompt(
            "vote",
            voter_name="Ọbàtálá",
            question="Should we adopt the charter?",
            proposal_summaries=["[engineer, confidence 0.90] adopt", "[qa, confidence 0.80] amend"],
            context_text="",
        )
        assert "You are Ọbàtálá" in result
        assert "Should we adopt the charter?" in result
        assert "1. [engineer, confidence 0.90] adopt" in result
        assert "2. [qa, confidence 0.80] amend" in result
        assert "## Debate context" not in result

    def test_vote_template_without_proposals(self):
        result = render_prompt("vote", voter_name="X", question="Q?", proposal_summaries=[])
        assert "(no proposals were submitted)" in result

    def test_vote_context_rendered_when_provided(self):
        result = render_prompt(
            "vote", voter_name="X", question="Q?", proposal_summaries=[],
            context_text="Winning role: engineer",
        )
        assert "## Debate context" in result
        assert "Winning role: engineer" in result

    def test_propose_template(self):
        result = render_prompt("propose", role="critic", question="Q?")
        assert "You are the critic" in result
        assert "CONFIDENCE:" in result
        assert "## Context" not in result

    def test_book_template(self):
        result = render_prompt(
            "book",
            title="The Charter",
            question="Q?",
            agents_spawned=3,
            roles=["engineer", "qa"],
            debate_iterations=1,
            winner_role="engineer",
            consensus_score=0.4,
            verdict="UNCERTAIN",
            decision_id="ritual-abc",
        )
        assert result.startswith("# The Charter")
        assert "3 voices were summoned (engineer, qa)" in result
        assert "consensus score of 0.400, verdict UNCERTAIN" in result
        assert "Decision ritual-abc" in result

    def test_nonexistent_template_raises(self):
        with pytest.raises(FileNotFoundError):
            render_prompt("nonexistent_template")
