"""
Thesis Intake
=============
Pulls thesis comments off a forum post, scores them and files them in the
ledger. Re-running on the same post only picks up new comments.
"""

from dataclasses import dataclass, field
from typing import List

from syndicate.governance.thesis import ThesisEvaluation, evaluate_thesis, parse_thesis_from_comment
from syndicate.shared.infrastructure.forum_client import ForumClient, ForumComment
from syndicate.shared.models.ledger import Thesis
from syndicate.shared.persistence.ledger_store import LedgerStore, utc_now_iso
from syndicate.shared.system.logging import Logger


@dataclass
class IntakeReport:
    post_id: int
    accepted: List[Thesis] = field(default_factory=list)
    rejected: List[Thesis] = field(default_factory=list)
    skipped: int = 0

    def to_dict(self) -> dict:
        return {
            "postId": self.post_id,
            "accepted": [t.to_dict() for t in self.accepted],
            "rejected": [t.to_dict() for t in self.rejected],
            "skipped": self.skipped,
        }


def thesis_id_for(post_id: int, comment_id: int) -> str:
    return f"thesis-{post_id}-{comment_id}"


class ThesisIntake:
    def __init__(self, forum: ForumClient, ledger: LedgerStore):
        self.forum = forum
        self.ledger = ledger

    async def process_post(self, post_id: int) -> IntakeReport:
        report = IntakeReport(post_id=post_id)
        comments = await self.forum.get_comments(post_id)

        for comment in comments:
            thesis_id = thesis_id_for(post_id, comment.id)
            if self.ledger.has_thesis(thesis_id):
                report.skipped += 1
                continue

            thesis = self._ingest(thesis_id, comment)
            if thesis is None:
                report.skipped += 1
            elif thesis.status == "rejected":
                report.rejected.append(thesis)
            else:
                report.accepted.append(thesis)

        Logger.info(
            f"[FORUM] Post {post_id}: {len(report.accepted)} accepted, "
            f"{len(report.rejected)} rejected, {report.skipped} skipped"
        )
        return report

    def _ingest(self, thesis_id: str, comment: ForumComment):
        proposal = parse_thesis_from_comment(comment.body)
        if proposal is None:
            return None

        evaluation: ThesisEvaluation = evaluate_thesis(proposal)
        self.ledger.add_member(comment.agent_id, comment.agent_name)

        thesis = Thesis(
            id=thesis_id,
            agent_id=comment.agent_id,
            agent_name=comment.agent_name,
            token=proposal.token,
            direction=proposal.direction,
            timeframe=proposal.timeframe,
            conviction=proposal.conviction,
            reasoning=proposal.reasoning,
            created_at=utc_now_iso(),
            status="pending" if evaluation.approved else "rejected",
            score=evaluation.score,
        )
        self.ledger.add_thesis(thesis)

        verdict = "approved" if evaluation.approved else "rejected"
        Logger.info(f"[FORUM] {thesis_id} {proposal.token} {verdict} (score {evaluation.score}, {evaluation.risk_level})")
        return thesis
