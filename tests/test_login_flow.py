"""
tests/test_login_flow.py -- Unit tests for the external-login state machine.

Covers redirect target selection (explicit parameter, Referer fallback,
default, untrusted and protocol-relative targets) and the
PENDING -> AUTHENTICATED -> REDIRECTED transitions, including illegal ones.
"""

from __future__ import annotations

import pytest

from auth.directory import MemberDirectory
from auth.errors import LoginStateError
from auth.login import LoginFlow, LoginState, authenticate, begin_login, finish, safe_redirect_target
from auth.models import ExternalProfile
from auth.tokens import verify_access_token

FRONT = "http://localhost:3000"
TRUSTED = ["https://cdpn.io", FRONT]

PROFILE = ExternalProfile(provider="google", subject="g-7", nickname="Gale")


class TestRedirectTarget:
    @pytest.mark.parametrize(
        "candidate, expected",
        [
            (None, FRONT),
            ("", FRONT),
            ("   ", FRONT),
            ("/posts/3", "/posts/3"),
            ("//evil.example/x", FRONT),
            ("http://localhost:3000/posts/3", "http://localhost:3000/posts/3"),
            ("https://cdpn.io/pen/abc", "https://cdpn.io/pen/abc"),
            ("https://evil.example/steal", FRONT),
            ("javascript:alert(1)", FRONT),
            ("http://localhost:3001/", FRONT),
        ],
    )
    def test_safe_redirect_target(self, candidate, expected) -> None:
        assert safe_redirect_target(candidate, FRONT, TRUSTED) == expected

    def test_origin_comparison_ignores_case(self) -> None:
        assert safe_redirect_target("HTTP://LOCALHOST:3000/a", FRONT, TRUSTED) == "HTTP://LOCALHOST:3000/a"


class TestBeginLogin:
    def test_blank_everything_uses_default(self) -> None:
        flow = begin_login(None, None, FRONT, TRUSTED)
        assert flow.redirect_target == FRONT
        assert flow.state is LoginState.PENDING

    def test_parameter_wins_over_referrer(self) -> None:
        flow = begin_login("http://localhost:3000/a", "http://localhost:3000/b", FRONT, TRUSTED)
        assert flow.redirect_target == "http://localhost:3000/a"

    def test_blank_parameter_falls_back_to_referrer(self) -> None:
        flow = begin_login("  ", "https://cdpn.io/pen/x", FRONT, TRUSTED)
        assert flow.redirect_target == "https://cdpn.io/pen/x"

    def test_untrusted_parameter_uses_default(self) -> None:
        flow = begin_login("https://evil.example", "http://localhost:3000/b", FRONT, TRUSTED)
        assert flow.redirect_target == FRONT


class TestTransitions:
    def test_full_flow(self, directory: MemberDirectory) -> None:
        flow = begin_login(None, None, FRONT, TRUSTED)
        authenticate(flow, directory, PROFILE)
        assert flow.state is LoginState.AUTHENTICATED
        assert flow.member.nickname == "Gale"
        assert flow.access_token is None

        finish(flow, directory)
        assert flow.state is LoginState.REDIRECTED
        assert verify_access_token(flow.access_token) == flow.member.id
        assert flow.api_key == flow.member.api_key

    def test_repeat_login_reuses_member(self, directory: MemberDirectory) -> None:
        first = finish(authenticate(LoginFlow(FRONT), directory, PROFILE), directory)
        second = finish(authenticate(LoginFlow(FRONT), directory, PROFILE), directory)
        assert first.member.id == second.member.id
        assert first.api_key == second.api_key

    def test_finish_before_authenticate_is_illegal(self, directory: MemberDirectory) -> None:
        with pytest.raises(LoginStateError):
            finish(LoginFlow(FRONT), directory)

    def test_authenticate_twice_is_illegal(self, directory: MemberDirectory) -> None:
        flow = authenticate(LoginFlow(FRONT), directory, PROFILE)
        with pytest.raises(LoginStateError):
            authenticate(flow, directory, PROFILE)

    def test_finish_twice_is_illegal(self, directory: MemberDirectory) -> None:
        flow = finish(authenticate(LoginFlow(FRONT), directory, PROFILE), directory)
        with pytest.raises(LoginStateError):
            finish(flow, directory)
