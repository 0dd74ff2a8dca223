"""
Thesis Scoring Unit Tests
=========================
"""

import pytest

from syndicate.governance.thesis import (
    ThesisProposal,
    evaluate_thesis,
    parse_thesis_from_comment,
)


class TestEvaluateThesis:
    def test_unknown_token_rejected(self):
        result = evaluate_thesis(ThesisProposal(token="PEPE2", reasoning="x" * 300))

        assert result.approved is False
        assert result.score == 0
        assert result.risk_level == "rejected"
        assert 'not in approved list' in result.reasons[0]

    def test_stablecoin_week_high_conviction_is_low_risk(self):
        reasoning = (
            "Lending APY on piggyUSDC has been stable for months with growing TVL. "
            "Historical drawdowns are negligible and the position is a hedge against SOL volatility. "
            "Rotating idle treasury USDC here compounds with no directional exposure to the market."
        )
        assert len(reasoning) > 200

        result = evaluate_thesis(ThesisProposal(
            token="piggyUSDC", timeframe="1 week", conviction="high", reasoning=reasoning,
        ))

        # 50 + 20 + 10 + 10 + 10 (length) + 10 (data) = 110 -> clamped
        assert result.score == 100
        assert result.approved is True
        assert result.risk_level == "low"

    def test_brief_degen_bluechip_is_not_approved(self):
        result = evaluate_thesis(ThesisProposal(
            token="BONK", timeframe="24h", conviction="low", reasoning="ape in, moon soon",
        ))

        # 50 + 5 - 5 - 15 - 20 = 15
        assert result.score == 15
        assert result.approved is False
        assert result.risk_level == "high"
        assert any("Risk flags" in r for r in result.reasons)

    def test_medium_band(self):
        result = evaluate_thesis(ThesisProposal(
            token="SOL", timeframe="3d", conviction="medium", reasoning="y" * 100,
        ))

        # 50 + 5 + 5 + 5 = 65
        assert result.score == 65
        assert result.risk_level == "medium"
        assert result.approved is True

    def test_single_data_keyword_gives_no_bonus(self):
        base = evaluate_thesis(ThesisProposal(token="JitoSOL", reasoning="z" * 100))
        one = evaluate_thesis(ThesisProposal(token="JitoSOL", reasoning="apy " + "z" * 96))

        assert base.score == one.score

    def test_approval_threshold_is_40(self):
        # 50 + 5 (SOL) - 5 (24h) - 15 (brief) = 35 ; medium conviction +5 = 40
        result = evaluate_thesis(ThesisProposal(
            token="SOL", timeframe="24h", conviction="medium", reasoning="short",
        ))
        assert result.score == 40
        assert result.approved is True
        assert result.risk_level == "high"


class TestParseThesisFromComment:
    def test_full_block(self):
        body = (
            "Token: JitoSOL\n"
            "Direction: long\n"
            "Timeframe: 1 week\n"
            "Conviction: HIGH\n"
            "Reasoning: Staking yield plus MEV tips.\nSecond line of reasoning."
        )

        proposal = parse_thesis_from_comment(body)

        assert proposal.token == "JitoSOL"
        assert proposal.direction == "long"
        assert proposal.timeframe == "1 week"
        assert proposal.conviction == "high"
        assert proposal.reasoning == "Staking yield plus MEV tips.\nSecond line of reasoning."

    def test_defaults(self):
        proposal = parse_thesis_from_comment("token: SOL")

        assert proposal.token == "SOL"
        assert proposal.direction == "long"
        assert proposal.timeframe == "3d"
        assert proposal.conviction == "medium"
        assert proposal.reasoning == ""

    @pytest.mark.parametrize("body", ["", "gm frens", "Direction: short\nReasoning: no token line"])
    def test_no_token_returns_none(self, body):
        assert parse_thesis_from_comment(body) is None


class TestScoringProperties:
    def test_data_driven_bluechip_week_high(self):
        reasoning = ("BONK volume and TVL across its pools have grown for weeks; APY on LP positions "
                     "stays above 30% and the token keeps deepening liquidity on every major venue. ") * 2
        assert len(reasoning) > 200

        result = evaluate_thesis(ThesisProposal(
            token="BONK", conviction="high", timeframe="1 week", reasoning=reasoning[:250],
        ))

        assert result.approved is True
        assert result.risk_level in ("low", "medium")
        assert result.score > 50

    @pytest.mark.parametrize("token", ["SOL", "USDC", "mSOL", "WIF"])
    @pytest.mark.parametrize("timeframe", ["24h", "3d", "1 week"])
    @pytest.mark.parametrize("conviction", ["low", "medium", "high"])
    @pytest.mark.parametrize("reasoning", ["", "yolo ape degen moon 100x", "apy tvl sharpe backtest " * 20])
    def test_score_clamped_and_approval_consistent(self, token, timeframe, conviction, reasoning):
        result = evaluate_thesis(ThesisProposal(
            token=token, timeframe=timeframe, conviction=conviction, reasoning=reasoning,
        ))

        assert 0 <= result.score <= 100
        assert result.approved == (result.score >= 40)
