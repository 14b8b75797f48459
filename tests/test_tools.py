import pytest

from slack_gateway.auth.schemas import SlackTokenData
from slack_gateway.mcp import TOOLS, ToolDispatcher
from slack_gateway.slack import SlackClient

from conftest import OWNER_ID, FakeSlack

TOKEN_DATA = SlackTokenData(
    access_token="xoxp-test",
    team_id="T0ACME",
    user_id=OWNER_ID,
    team_name="Acme",
    user_name="Olivia Owner",
)


async def invoke(slack: FakeSlack, name: str, /, **arguments):
    async with SlackClient("xoxp-test", transport=slack.transport()) as client:
        dispatcher = ToolDispatcher(client, TOKEN_DATA, page_size=2)
        return await dispatcher.invoke(name, arguments)


def test_tool_catalogue():
    names = {t.name for t in TOOLS}
    assert len(names) == 11
    assert {"slack_send_message", "slack_send_dm", "slack_search_users", "slack_list_files"} <= names


@pytest.mark.asyncio
async def test_unknown_tool(fake_slack):
    result = await invoke(fake_slack, "slack_delete_workspace")
    assert result.is_error
    assert result.data["error"] == "unknown_tool"


@pytest.mark.asyncio
async def test_missing_required_arguments(fake_slack):
    result = await invoke(fake_slack, "slack_send_dm", user="bob")
    assert result.is_error
    assert result.data == {"error": "invalid_arguments", "missing": ["text"]}
    assert fake_slack.calls == []


@pytest.mark.asyncio
async def test_send_dm_to_unique_match(fake_slack):
    result = await invoke(fake_slack, "slack_send_dm", user="@bob", text="lunch?")

    assert not result.is_error
    assert fake_slack.calls_to("conversations.open") == [{"users": "U03BOB001"}]
    assert fake_slack.calls_to("chat.postMessage") == [{"channel": "D03BOB001", "text": "lunch?"}]
    assert result.data["user"]["id"] == "U03BOB001"


@pytest.mark.asyncio
async def test_send_dm_to_ambiguous_name_sends_nothing(fake_slack):
    result = await invoke(fake_slack, "slack_send_dm", user="ali", text="hi")

    assert result.is_error
    assert result.data["error"] == "ambiguous"
    assert result.data["top_score"] == 70
    assert {c["id"] for c in result.data["candidates"]} == {"U01ALICE1", "U02ALICE2"}
    assert "U01ALICE1" in result.text and "U02ALICE2" in result.text
    assert fake_slack.calls_to("conversations.open") == []
    assert fake_slack.calls_to("chat.postMessage") == []


@pytest.mark.asyncio
async def test_send_dm_to_unknown_id_skips_enumeration(fake_slack):
    result = await invoke(fake_slack, "slack_send_dm", user="U0000000", text="hi")

    assert result.is_error
    assert result.data == {"error": "not_found", "query": "U0000000", "reason": "invalid_id"}
    assert fake_slack.calls_to("users.list") == []


@pytest.mark.asyncio
async def test_send_message_to_channel_id_skips_directory(fake_slack):
    result = await invoke(fake_slack, "slack_send_message", channel="C0GENERAL1", text="ship it", thread_ts="1.5")

    assert not result.is_error
    assert fake_slack.calls_to("users.list") == []
    assert fake_slack.calls_to("chat.postMessage") == [
        {"channel": "C0GENERAL1", "text": "ship it", "thread_ts": "1.5"}
    ]


@pytest.mark.asyncio
async def test_send_message_to_channel_name(fake_slack):
    await invoke(fake_slack, "slack_send_message", channel="#random", text="hey")
    assert fake_slack.calls_to("chat.postMessage")[0]["channel"] == "random"


@pytest.mark.asyncio
async def test_send_message_to_person_opens_dm(fake_slack):
    result = await invoke(fake_slack, "slack_send_message", channel="Bob Stone", text="hey")

    assert not result.is_error
    assert fake_slack.calls_to("chat.postMessage")[0]["channel"] == "D03BOB001"


@pytest.mark.asyncio
async def test_dm_open_failure_is_reported_with_user(fake_slack):
    fake_slack.failures["conversations.open"] = "cannot_dm_bot"

    result = await invoke(fake_slack, "slack_send_dm", user="bob", text="hi")

    assert result.is_error
    assert result.data["error"] == "conversation_open_failed"
    assert result.data["user"]["id"] == "U03BOB001"
    assert fake_slack.calls_to("chat.postMessage") == []


@pytest.mark.asyncio
async def test_directory_failure_is_retryable_error(fake_slack):
    fake_slack.failures["users.list"] = "internal_error"

    result = await invoke(fake_slack, "slack_send_dm", user="bob", text="hi")

    assert result.is_error
    assert result.data == {"error": "directory_unavailable", "retryable": True}


@pytest.mark.asyncio
async def test_slack_error_on_send(fake_slack):
    fake_slack.failures["chat.postMessage"] = "not_in_channel"

    result = await invoke(fake_slack, "slack_send_message", channel="C0GENERAL1", text="hi")

    assert result.is_error
    assert result.data["slack_error"] == "not_in_channel"


@pytest.mark.asyncio
async def test_rate_limited_send_reports_retry_after(fake_slack):
    fake_slack.rate_limited["chat.postMessage"] = 30

    result = await invoke(fake_slack, "slack_send_message", channel="C0GENERAL1", text="hi")

    assert result.is_error
    assert result.data == {
        "error": "slack_api_error",
        "slack_error": "ratelimited",
        "retryable": True,
        "retry_after": 30,
    }


@pytest.mark.asyncio
async def test_search_users_ranks_and_hides_bots(fake_slack):
    result = await invoke(fake_slack, "slack_search_users", search="alice")

    ids = [u["id"] for u in result.data["users"]]
    assert ids == ["U01ALICE1", "U02ALICE2"]
    assert [u["score"] for u in result.data["users"]] == [100, 70]


@pytest.mark.asyncio
async def test_get_users_filters(fake_slack):
    result = await invoke(fake_slack, "slack_get_users")
    ids = {u["id"] for u in result.data["users"]}
    assert "U04BOT001" not in ids
    assert "U05GONE01" not in ids

    result = await invoke(fake_slack, "slack_get_users", include_bots=True, search="alice")
    assert "U04BOT001" in {u["id"] for u in result.data["users"]}


@pytest.mark.asyncio
async def test_search_messages_rewrites_user_filters(fake_slack):
    result = await invoke(fake_slack, "slack_search_messages", query="from:@bob budget")

    assert fake_slack.calls_to("search.messages")[0]["query"] == "from:<@U03BOB001> budget"
    assert "Bob Stone" in result.text


@pytest.mark.asyncio
async def test_search_messages_keeps_ambiguous_filter(fake_slack):
    result = await invoke(fake_slack, "slack_search_messages", query="from:@ali budget")

    assert fake_slack.calls_to("search.messages")[0]["query"] == "from:@ali budget"
    assert "more than one person" in result.text


@pytest.mark.asyncio
async def test_history_enriches_authors_with_fallback(fake_slack):
    result = await invoke(fake_slack, "slack_get_channel_history", channel="C0GENERAL1", limit=5)

    assert "Bob Stone: hi there" in result.text
    assert "U0MISSING: who am I" in result.text
    assert fake_slack.calls_to("users.list") == []


@pytest.mark.asyncio
async def test_get_channels_largest_first(fake_slack):
    result = await invoke(fake_slack, "slack_get_channels", limit=2)
    assert [c["name"] for c in result.data["channels"]] == ["general", "random"]


@pytest.mark.asyncio
async def test_get_user_info_by_name(fake_slack):
    result = await invoke(fake_slack, "slack_get_user_info", user="Bobby")

    assert not result.is_error
    assert "Username: @bob" in result.text
    assert result.data["presence"] == "active"


@pytest.mark.asyncio
async def test_reactions_strip_colons(fake_slack):
    result = await invoke(fake_slack, "slack_add_reaction", channel="C0GENERAL1", timestamp="1.5", name=":tada:")
    assert not result.is_error
    assert fake_slack.calls_to("reactions.add") == [{"channel": "C0GENERAL1", "timestamp": "1.5", "name": "tada"}]

    await invoke(fake_slack, "slack_remove_reaction", channel="C0GENERAL1", timestamp="1.5", name="tada")
    assert len(fake_slack.calls_to("reactions.remove")) == 1


@pytest.mark.asyncio
async def test_list_files_for_user(fake_slack):
    result = await invoke(fake_slack, "slack_list_files", user="bob")

    assert fake_slack.calls_to("files.list") == [{"user": "U03BOB001", "count": "20"}]
    assert result.data["files"][0]["id"] == "F0FILE001"
