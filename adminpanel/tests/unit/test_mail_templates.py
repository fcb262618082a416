from __future__ import annotations

from adminpanel.services.mail import email_confirmation_message, password_reset_message, welcome_message


def test_reset_link_carries_email_and_token() -> None:
    message = password_reset_message(full_name="Alice", email="alice@example.com", token="abc_123", expiry_hours=24)
    assert "/Account/ResetPassword?email=alice%40example.com&amp;token=abc_123" in message.html_body
    assert "24 hours" in message.html_body


def test_names_are_html_escaped() -> None:
    welcome = welcome_message(full_name="<b>Eve</b>", username="eve")
    confirm = email_confirmation_message(full_name="Eve & Co", email="eve@example.com", token="t")
    assert "&lt;b&gt;Eve&lt;/b&gt;" in welcome.html_body
    assert "Eve &amp; Co" in confirm.html_body
    assert "/Account/ConfirmEmail" in confirm.html_body


def test_template_syntax_in_values_is_not_evaluated() -> None:
    message = welcome_message(full_name="{{ 7 * 7 }}", username="<script>alert(1)</script>")
    assert "{{ 7 * 7 }}" in message.html_body
    assert "49" not in message.html_body
    assert "<script>" not in message.html_body
    assert "&lt;script&gt;" in message.html_body
    assert message.html_body.rstrip().endswith("</div>")
