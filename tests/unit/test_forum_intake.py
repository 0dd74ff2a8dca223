"""
Forum Client & Thesis Intake Unit Tests
=======================================
"""

import json

import httpx
import pytest

from syndicate.governance.intake import ThesisIntake, thesis_id_for
from syndicate.shared.execution.errors import ConfigurationError, ForumError
from syndicate.shared.infrastructure.forum_client import ForumClient

GOOD_THESIS = (
    "Token: piggyUSDC\n"
    "Direction: long\n"
    "Timeframe: 1 week\n"
    "Conviction: high\n"
    "Reasoning: Lending APY is steady and TVL keeps growing; historical drawdown is flat."
)

BAD_THESIS = "Token: FARTCOIN\nReasoning: 100x yolo"


def forum_with(handler, api_key="forum-key") -> ForumClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ForumClient(api_key=api_key, base_url="https://forum.test/api", http_client=http)


def comments_handler(comments):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path.endswith("/comments")
        return httpx.Response(200, json={"comments": comments})
    return handler


class TestForumClient:
    @pytest.mark.asyncio
    async def test_get_comments(self):
        seen = {}

        def handler(request):
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json={"comments": [
                {"id": 1, "postId": 5, "agentId": 42, "agentName": "alpha", "body": "hi"},
            ]})

        async with forum_with(handler) as forum:
            comments = await forum.get_comments(5)

        assert comments[0].agent_id == 42
        assert seen["params"] == {"sort": "new", "limit": "50"}

    @pytest.mark.asyncio
    async def test_post_comment_sends_bearer(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers.get("authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"comment": {"id": 9, "postId": 5, "agentId": 896, "body": "ok"}})

        async with forum_with(handler) as forum:
            comment = await forum.post_comment(5, "ok")

        assert seen["auth"] == "Bearer forum-key"
        assert seen["body"] == {"body": "ok"}
        assert comment.id == 9

    @pytest.mark.asyncio
    async def test_write_without_key_fails_fast(self):
        async with forum_with(lambda r: httpx.Response(200, json={}), api_key=None) as forum:
            with pytest.raises(ConfigurationError) as exc:
                await forum.create_post("t", "b")
        assert exc.value.key == "COLOSSEUM_API_KEY"

    @pytest.mark.asyncio
    async def test_http_error(self):
        async with forum_with(lambda r: httpx.Response(404, text="missing")) as forum:
            with pytest.raises(ForumError) as exc:
                await forum.get_post(1)
        assert exc.value.status_code == 404


class TestThesisIntake:
    @pytest.mark.asyncio
    async def test_files_approved_and_rejected(self, ledger):
        comments = [
            {"id": 1, "postId": 5, "agentId": 42, "agentName": "alpha", "body": GOOD_THESIS},
            {"id": 2, "postId": 5, "agentId": 43, "agentName": "beta", "body": BAD_THESIS},
            {"id": 3, "postId": 5, "agentId": 44, "agentName": "gamma", "body": "gm"},
        ]

        async with forum_with(comments_handler(comments)) as forum:
            report = await ThesisIntake(forum, ledger).process_post(5)

        assert [t.id for t in report.accepted] == [thesis_id_for(5, 1)]
        assert [t.id for t in report.rejected] == [thesis_id_for(5, 2)]
        assert report.skipped == 1

        doc = ledger.load()
        by_id = {t.id: t for t in doc.theses}
        assert by_id["thesis-5-1"].status == "pending"
        assert by_id["thesis-5-2"].status == "rejected"
        assert by_id["thesis-5-2"].score == 0
        assert {m.agent_id for m in doc.members} == {42, 43}
        assert doc.find_member(42).theses_count == 1

    @pytest.mark.asyncio
    async def test_rerun_skips_ingested(self, ledger):
        comments = [{"id": 1, "postId": 5, "agentId": 42, "agentName": "alpha", "body": GOOD_THESIS}]

        async with forum_with(comments_handler(comments)) as forum:
            intake = ThesisIntake(forum, ledger)
            await intake.process_post(5)
            second = await intake.process_post(5)

        assert second.accepted == [] and second.skipped == 1
        assert len(ledger.load().theses) == 1
        assert ledger.load().find_member(42).theses_count == 1
