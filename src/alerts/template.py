"""Token substitution for alert email subjects and bodies."""

from __future__ import annotations

import getpass
import re
import socket
from collections.abc import Mapping


class TokenNames:
    """Replacement tokens understood by alert templates."""

    APP = "%APP%"
    MN = "%MN%"
    USER = "%USER%"
    MSG = "%MSG%"
    EX = "%EX%"


def render(template: str, tokens: Mapping[str, str]) -> str:
    """Replace every token key in *template* with its value.

    Substitution is a single literal pass: inserted values are never
    scanned for further tokens.  When keys overlap the longer one wins.
    """
    keys = sorted((k for k in tokens if k), key=len, reverse=True)
    if not keys or not template:
        return template
    pattern = re.compile("|".join(re.escape(k) for k in keys))
    return pattern.sub(lambda m: tokens[m.group(0)], template)


def _user_name() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return ""


def fixed_tokens(app_name: str) -> dict[str, str]:
    """Tokens whose values never change for the life of the process."""
    return {
        TokenNames.APP: app_name,
        TokenNames.MN: socket.gethostname(),
        TokenNames.USER: _user_name(),
    }


def event_tokens(
    fixed: Mapping[str, str],
    message: str,
    error: BaseException | None = None,
) -> dict[str, str]:
    """Fixed tokens plus the per-alert message and error text."""
    tokens = dict(fixed)
    tokens[TokenNames.MSG] = message
    if error is not None:
        tokens[TokenNames.EX] = str(error)
    return tokens
