import pytest

from slack_gateway.errors import DirectoryUnavailable, UserNotFoundError
from slack_gateway.resolution import DirectoryCache
from slack_gateway.slack import SlackClient, SlackDirectory

from conftest import FakeDirectory, FakeSlack, profile


def three_pages():
    return [
        [profile("U0P000001", username="one")],
        [profile("U0P000002", username="two"), profile("U0P000003", username="bot", is_bot=True)],
        [profile("U0P000004", username="four", is_deleted=True)],
    ]


@pytest.mark.asyncio
async def test_all_users_follows_cursors_in_order():
    directory = FakeDirectory(three_pages())
    cache = DirectoryCache(directory, page_size=1)

    users = await cache.all_users()

    assert directory.page_cursors == [None, "c1", "c2"]
    assert [u.id for u in users] == ["U0P000001", "U0P000002", "U0P000003", "U0P000004"]


@pytest.mark.asyncio
async def test_all_users_is_memoized_per_cache():
    directory = FakeDirectory(three_pages())
    cache = DirectoryCache(directory)

    await cache.all_users()
    await cache.active_users()
    assert directory.page_calls == 3

    await DirectoryCache(directory).all_users()
    assert directory.page_calls == 6


@pytest.mark.asyncio
async def test_active_users_drops_bots_and_deleted():
    cache = DirectoryCache(FakeDirectory(three_pages()))
    assert [u.id for u in await cache.active_users()] == ["U0P000001", "U0P000002"]


@pytest.mark.asyncio
async def test_failure_on_any_page_fails_whole_listing():
    directory = FakeDirectory(three_pages(), fail_on_page=1)
    cache = DirectoryCache(directory)

    with pytest.raises(DirectoryUnavailable) as exc:
        await cache.all_users()

    assert exc.value.retryable
    assert directory.page_cursors == [None, "c1"]


@pytest.mark.asyncio
async def test_timeout_becomes_directory_unavailable():
    cache = DirectoryCache(FakeDirectory(three_pages(), delay=0.2), timeout=0.01)

    with pytest.raises(DirectoryUnavailable, match="timed out"):
        await cache.all_users()


@pytest.mark.asyncio
async def test_slack_directory_paginates_users_list():
    slack = FakeSlack()
    async with SlackClient("xoxp-test", transport=slack.transport()) as client:
        users = await DirectoryCache(SlackDirectory(client), page_size=2).all_users()

    assert len(users) == len(slack.members)
    assert [c.get("cursor") for c in slack.calls_to("users.list")] == [None, "2", "4"]
    assert all(c["limit"] == "2" for c in slack.calls_to("users.list"))


@pytest.mark.asyncio
async def test_slack_directory_maps_missing_user():
    slack = FakeSlack()
    async with SlackClient("xoxp-test", transport=slack.transport()) as client:
        with pytest.raises(UserNotFoundError):
            await SlackDirectory(client).fetch_user_by_id("U0NOBODY1")


@pytest.mark.asyncio
async def test_slack_directory_other_errors_are_unavailable():
    slack = FakeSlack()
    slack.failures["users.info"] = "internal_error"
    async with SlackClient("xoxp-test", transport=slack.transport()) as client:
        with pytest.raises(DirectoryUnavailable):
            await SlackDirectory(client).fetch_user_by_id("U03BOB001")


@pytest.mark.asyncio
async def test_slack_directory_opens_dm():
    slack = FakeSlack()
    async with SlackClient("xoxp-test", transport=slack.transport()) as client:
        channel_id = await SlackDirectory(client).open_direct_message("U03BOB001")

    assert channel_id == "D03BOB001"
    assert slack.calls_to("conversations.open") == [{"users": "U03BOB001"}]
