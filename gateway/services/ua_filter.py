import re

DEFAULT_BLOCKED_UAS = (
    "netcraft",
    "zgrab",
    "masscan",
    "nmap",
    "sqlmap",
    "wpscan",
    "nikto",
)

_SEPARATORS = re.compile(r"""[\s|"',]+""")


def parse_blocklist(extra: str = "") -> tuple[str, ...]:
    """Default blocklist plus the entries of `extra`.

    `extra` may separate entries with commas, whitespace, quotes or `|`.
    """
    entries = [entry.lower() for entry in _SEPARATORS.split(extra) if entry]
    blocklist = list(DEFAULT_BLOCKED_UAS)
    for entry in entries:
        if entry not in blocklist:
            blocklist.append(entry)
    return tuple(blocklist)


def should_block(user_agent: str, blocklist: tuple[str, ...]) -> bool:
    agent = user_agent.lower()
    return any(blocked in agent for blocked in blocklist)
