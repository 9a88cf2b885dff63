"""Unit tests for outbound message dispatch and failure accounting."""
from __future__ import annotations

import pytest

from adapters.qywechat import QyWechatMessageClient
from adapters.qywechat.message import INVALID_REQUEST_ERRCODE
from models.wecom import MarkdownMessage, Recipients, TextCardMessage, TextMessage
from utils.exceptions import DispatchError, PlatformRequestError, TokenAcquisitionError

from helpers.wecom import send_ok, token_ok


@pytest.fixture
def messages(tokens) -> QyWechatMessageClient:
    return QyWechatMessageClient(tokens)


class TestDispatch:
    async def test_payload_shape(self, messages, fake_http, platform_config) -> None:
        fake_http.queue("gettoken", token_ok("T1"))
        fake_http.queue("message/send", send_ok())

        await messages.send_text(platform_config, ["user1", "user2"], "hello")

        call = fake_http.calls_to("message/send")[0]
        assert call.method == "POST"
        assert call.params == {"access_token": "T1"}
        assert call.payload == {
            "touser": "user1|user2",
            "msgtype": "text",
            "agentid": 1000002,
            "text": {"content": "hello"},
            "safe": 0,
        }

    async def test_full_success(self, messages, fake_http, platform_config) -> None:
        fake_http.queue("gettoken", token_ok())
        fake_http.queue("message/send", send_ok())

        result = await messages.send_markdown(platform_config, "user1|user2", "**hi**")

        assert result.success
        assert (result.sent_count, result.failed_count) == (2, 0)
        assert result.errors == []
        assert result.msgid == "MSGID_1"

    async def test_partial_failure_is_counted_per_recipient(self, messages, fake_http, platform_config) -> None:
        fake_http.queue("gettoken", token_ok())
        fake_http.queue("message/send", send_ok(invaliduser="user2"))

        result = await messages.send_text(platform_config, "user1|user2|user3", "hello")

        assert result.success
        assert result.sent_count == 2
        assert result.failed_count == 1
        assert [(e.user, e.kind) for e in result.errors] == [("user2", "user")]

    async def test_every_recipient_invalid(self, messages, fake_http, platform_config) -> None:
        fake_http.queue("gettoken", token_ok())
        fake_http.queue("message/send", send_ok(invaliduser="a|b"))

        result = await messages.send_text(platform_config, "a|b", "hello")

        assert not result.success
        assert (result.sent_count, result.failed_count) == (0, 2)

    async def test_broadcast_counts_as_one(self, messages, fake_http, platform_config) -> None:
        fake_http.queue("gettoken", token_ok())
        fake_http.queue("message/send", send_ok())

        result = await messages.send_text(platform_config, "@all", "hello")

        assert fake_http.calls_to("message/send")[0].payload["touser"] == "@all"
        assert result.success
        assert result.sent_count == 1

    async def test_textcard_payload(self, messages, fake_http, platform_config) -> None:
        fake_http.queue("gettoken", token_ok())
        fake_http.queue("message/send", send_ok())

        await messages.send_textcard(platform_config, "u1", "标题", "描述", "https://a.com", btntxt="详情")

        payload = fake_http.calls_to("message/send")[0].payload
        assert payload["msgtype"] == "textcard"
        assert payload["textcard"] == {"title": "标题", "description": "描述", "url": "https://a.com", "btntxt": "详情"}

    async def test_party_and_tag_recipients(self, messages, fake_http, platform_config) -> None:
        fake_http.queue("gettoken", token_ok())
        fake_http.queue("message/send", send_ok(invalidparty="9"))

        targets = Recipients(parties=["2", "9"], tags=["1"])
        result = await messages.dispatch_message(platform_config, TextMessage(content="hi"), targets)

        payload = fake_http.calls_to("message/send")[0].payload
        assert payload["toparty"] == "2|9"
        assert payload["totag"] == "1"
        assert "touser" not in payload
        assert (result.sent_count, result.failed_count) == (2, 1)
        assert result.errors[0].kind == "party"


class TestTokenRetry:
    async def test_expired_token_is_refreshed_and_retried_once(self, messages, fake_http, platform_config) -> None:
        fake_http.queue("gettoken", token_ok("T1"), token_ok("T2"))
        fake_http.queue("message/send", {"errcode": 42001, "errmsg": "access_token expired"}, send_ok())

        result = await messages.send_text(platform_config, "u1", "hello")

        assert result.success
        sends = fake_http.calls_to("message/send")
        assert [c.params["access_token"] for c in sends] == ["T1", "T2"]

    async def test_second_expiry_raises_without_looping(self, messages, fake_http, platform_config) -> None:
        fake_http.queue("gettoken", token_ok("T1"), token_ok("T2"))
        fake_http.queue(
            "message/send",
            {"errcode": 42001, "errmsg": "access_token expired"},
            {"errcode": 42001, "errmsg": "access_token expired"},
        )

        with pytest.raises(DispatchError) as exc_info:
            await messages.send_text(platform_config, "u1", "hello")

        assert exc_info.value.errcode == 42001
        assert len(fake_http.calls_to("message/send")) == 2
        assert len(fake_http.calls_to("gettoken")) == 2

    async def test_other_errcode_is_not_retried(self, messages, fake_http, platform_config) -> None:
        fake_http.queue("gettoken", token_ok())
        fake_http.queue("message/send", {"errcode": 81013, "errmsg": "user & party & tag all invalid"})

        with pytest.raises(DispatchError) as exc_info:
            await messages.send_text(platform_config, "a|b|c", "hello")

        assert exc_info.value.errcode == 81013
        assert exc_info.value.result.failed_count == 3
        assert exc_info.value.result.sent_count == 0
        assert len(fake_http.calls_to("message/send")) == 1

    async def test_token_failure_means_no_send(self, messages, fake_http, platform_config) -> None:
        fake_http.queue("gettoken", {"errcode": 40091, "errmsg": "secret is invalid"})

        with pytest.raises(TokenAcquisitionError):
            await messages.send_text(platform_config, "u1", "hello")
        assert fake_http.calls_to("message/send") == []

    async def test_network_failure_is_retryable(self, messages, fake_http, platform_config) -> None:
        fake_http.queue("gettoken", token_ok())
        fake_http.queue("message/send", PlatformRequestError("request timed out", timeout=True))

        with pytest.raises(DispatchError) as exc_info:
            await messages.send_text(platform_config, "u1", "hello")
        assert exc_info.value.errcode == -1
        assert exc_info.value.retryable


class TestLocalValidation:
    @pytest.mark.parametrize(
        "recipients, message",
        [
            ("", TextMessage(content="hi")),
            ([], TextMessage(content="hi")),
            (["a|b"], TextMessage(content="hi")),
            ([f"u{i}" for i in range(1001)], TextMessage(content="hi")),
            ("u1", TextMessage(content="x" * 2049)),
            ("u1", TextMessage(content="")),
            ("u1", MarkdownMessage(content="中" * 683)),
            ("u1", TextCardMessage(title="t" * 129, description="d", url="https://a.com")),
            ("u1", TextCardMessage(title="t", description="d" * 513, url="https://a.com")),
            ("u1", TextCardMessage(title="t", description="d", url="https://a.com/" + "p" * 2040)),
            ("u1", TextCardMessage(title="t", description="d", url="https://a.com", btntxt="查看详情啊")),
        ],
    )
    async def test_rejected_before_any_network_call(self, messages, fake_http, platform_config, recipients, message) -> None:
        with pytest.raises(DispatchError) as exc_info:
            await messages.dispatch_message(platform_config, message, recipients)

        assert exc_info.value.errcode == INVALID_REQUEST_ERRCODE
        assert not exc_info.value.retryable
        assert fake_http.calls == []

    async def test_limits_are_inclusive(self, messages, fake_http, platform_config) -> None:
        fake_http.queue("gettoken", token_ok())
        fake_http.queue("message/send", send_ok())

        result = await messages.send_text(platform_config, "u1", "x" * 2048)
        assert result.success
