from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
import logging
from typing import Any, Protocol
from urllib.parse import urlencode

from jinja2 import DictLoader, StrictUndefined
from jinja2.sandbox import SandboxedEnvironment

from adminpanel.core.config import get_settings


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MailMessage:
    subject: str
    html_body: str


class MailSender(Protocol):
    # Delivery backends raise MailDeliveryError when a message cannot be handed off.
    async def send(self, to: str, subject: str, html_body: str) -> None:
        ...


class LoggingMailSender:
    # Default sender: records the hand-off without any delivery transport.
    async def send(self, to: str, subject: str, html_body: str) -> None:
        settings = get_settings()
        logger.info(
            "mail_dispatched to=%s subject=%s sender=%s body_chars=%s",
            to,
            subject,
            settings.mail_sender_address,
            len(html_body),
        )


_TEMPLATES = {
    "layout.html": (
        '<div style="font-family:Arial,sans-serif;max-width:600px;margin:0 auto">\n'
        "<h2>{{ title }}</h2>\n"
        "<p>Hello {{ full_name }},</p>\n"
        "{% block body %}{% endblock %}\n"
        '<p style="color:#888;font-size:12px">{{ sender_name }}</p>\n'
        "</div>\n"
    ),
    "password_reset.html": (
        '{% extends "layout.html" %}\n'
        "{% block body %}\n"
        "<p>We received a request to reset your password. Use the link below to choose a new one.</p>\n"
        '<p><a href="{{ link }}">Reset password</a></p>\n'
        "<p>This link expires in {{ expiry_hours }} hours. If you did not ask for a reset, ignore this email.</p>\n"
        "{% endblock %}\n"
    ),
    "welcome.html": (
        '{% extends "layout.html" %}\n'
        "{% block body %}\n"
        "<p>Your account <strong>{{ username }}</strong> has been created.</p>\n"
        '<p><a href="{{ link }}">Sign in</a></p>\n'
        "{% endblock %}\n"
    ),
    "email_confirmation.html": (
        '{% extends "layout.html" %}\n'
        "{% block body %}\n"
        "<p>Please confirm your email address.</p>\n"
        '<p><a href="{{ link }}">Confirm email</a></p>\n'
        "{% endblock %}\n"
    ),
}


@lru_cache
def _environment() -> SandboxedEnvironment:
    # Autoescaping covers every user-supplied value (names, usernames, links).
    return SandboxedEnvironment(
        loader=DictLoader(_TEMPLATES),
        autoescape=True,
        trim_blocks=True,
        lstrip_blocks=True,
        undefined=StrictUndefined,
    )


def _render(template_name: str, **variables: Any) -> str:
    template = _environment().get_template(template_name)
    return template.render(sender_name=get_settings().mail_sender_name, **variables)


def _link(path: str, **params: str) -> str:
    base = get_settings().app_base_url.rstrip("/")
    if not params:
        return f"{base}{path}"
    return f"{base}{path}?{urlencode(params)}"


def password_reset_message(*, full_name: str, email: str, token: str, expiry_hours: int) -> MailMessage:
    body = _render(
        "password_reset.html",
        title="Password reset",
        full_name=full_name,
        link=_link("/Account/ResetPassword", email=email, token=token),
        expiry_hours=expiry_hours,
    )
    return MailMessage(subject="Reset your password", html_body=body)


def welcome_message(*, full_name: str, username: str) -> MailMessage:
    body = _render(
        "welcome.html",
        title="Welcome",
        full_name=full_name,
        username=username,
        link=_link("/Account/Login"),
    )
    return MailMessage(subject="Welcome", html_body=body)


def email_confirmation_message(*, full_name: str, email: str, token: str) -> MailMessage:
    body = _render(
        "email_confirmation.html",
        title="Email confirmation",
        full_name=full_name,
        link=_link("/Account/ConfirmEmail", email=email, token=token),
    )
    return MailMessage(subject="Confirm your email", html_body=body)
