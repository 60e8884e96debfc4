import pytest

from gateway.services.ua_filter import DEFAULT_BLOCKED_UAS, parse_blocklist, should_block


def test_parse_blocklist_defaults():
    assert parse_blocklist() == DEFAULT_BLOCKED_UAS
    assert "netcraft" in parse_blocklist("")


def test_parse_blocklist_separators():
    blocklist = parse_blocklist('BadBot, "evil-crawler"|scanner\tfoo')

    assert blocklist[: len(DEFAULT_BLOCKED_UAS)] == DEFAULT_BLOCKED_UAS
    assert blocklist[len(DEFAULT_BLOCKED_UAS) :] == (
        "badbot",
        "evil-crawler",
        "scanner",
        "foo",
    )


def test_parse_blocklist_deduplicates():
    blocklist = parse_blocklist("netcraft,badbot,BADBOT")
    assert blocklist.count("netcraft") == 1
    assert blocklist.count("badbot") == 1


@pytest.mark.parametrize(
    "user_agent,blocked",
    [
        ("Mozilla/5.0 (compatible; NetcraftSurveyAgent/1.0)", True),
        ("zgrab/0.x", True),
        ("docker/27.0.3 go/go1.21.12", False),
        ("containerd/v1.7.20", False),
        ("", False),
    ],
)
def test_should_block(user_agent, blocked):
    assert should_block(user_agent, parse_blocklist()) is blocked


def test_should_block_custom_entry():
    assert should_block("BadBot/2.1", parse_blocklist("badbot"))
