"""Transactional email templates rendered to subject, HTML and text bodies."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from html import escape
from typing import Any, Callable


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    html: str
    text: str


_LAYOUT = """<!DOCTYPE html>
<html>
  <head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{title}</title>
    <style>
      body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
      .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
      .header {{ background: {accent}; color: white; padding: 30px; text-align: center; border-radius: 8px 8px 0 0; }}
      .content {{ background: #ffffff; padding: 30px; border: 1px solid #e0e0e0; }}
      .button {{ display: inline-block; padding: 12px 30px; background: {accent}; color: white; text-decoration: none; border-radius: 5px; margin: 20px 0; }}
      .footer {{ background: #f8f9fa; padding: 20px; text-align: center; font-size: 12px; color: #666; border-radius: 0 0 8px 8px; }}
    </style>
  </head>
  <body>
    <div class="container">
      <div class="header">
        <h1>{heading}</h1>
        <p>{subheading}</p>
      </div>
      <div class="content">
{content}
      </div>
      <div class="footer">
        <p>This is an automated message, please do not reply to this email.</p>
        <p>&copy; {year} {product}. All rights reserved.</p>
      </div>
    </div>
  </body>
</html>
"""


def _button(url: str, label: str) -> str:
    safe_url = escape(url, quote=True)
    return (
        f'        <div style="text-align: center;"><a href="{safe_url}" class="button">'
        f"{escape(label)}</a></div>\n"
        "        <p>If the button doesn't work, copy and paste this link into your browser:</p>\n"
        f'        <p style="word-break: break-all;">{safe_url}</p>'
    )


def _page(
    *, title: str, accent: str, heading: str, subheading: str, content: str, product: str
) -> str:
    return _LAYOUT.format(
        title=escape(title),
        accent=accent,
        heading=escape(heading),
        subheading=escape(subheading),
        content=content,
        year=datetime.now(timezone.utc).year,
        product=escape(product),
    )


def render_verification(
    *, verification_url: str, user_name: str = "", product: str = "Course Platform"
) -> RenderedEmail:
    greeting = f"Welcome, {user_name}!" if user_name else "Welcome!"
    content = "\n".join(
        [
            "        <p>Thank you for registering. Please verify your email address to "
            "complete your registration and secure your account.</p>",
            _button(verification_url, "Verify Email Address"),
            "        <p><strong>Important:</strong> This link will expire in 24 hours.</p>",
            "        <p>If you didn't create an account with us, please ignore this email.</p>",
        ]
    )
    return RenderedEmail(
        subject="Verify Your Email Address",
        html=_page(
            title="Email Verification",
            accent="#667eea",
            heading=greeting,
            subheading="Please verify your email address",
            content=content,
            product=product,
        ),
        text=(
            f"{greeting}\n\n"
            f"Please verify your email address by visiting this link:\n{verification_url}\n\n"
            "This link will expire in 24 hours.\n\n"
            "If you didn't create an account with us, please ignore this email.\n"
        ),
    )


def render_password_reset(
    *, reset_url: str, user_name: str = "", product: str = "Course Platform"
) -> RenderedEmail:
    content = "\n".join(
        [
            f"        <p>Hello {escape(user_name)},</p>",
            "        <p>We received a request to reset the password for your account. "
            "If you made this request, use the button below:</p>",
            _button(reset_url, "Reset Password"),
            "        <p>This link will expire in 1 hour. If you didn't request this reset, "
            "ignore this email and your password will remain unchanged.</p>",
        ]
    )
    return RenderedEmail(
        subject="Reset Your Password",
        html=_page(
            title="Password Reset",
            accent="#ff6b6b",
            heading="Password Reset Request",
            subheading="Reset your account password",
            content=content,
            product=product,
        ),
        text=(
            "Password Reset Request\n\n"
            f"Hello {user_name},\n\n"
            f"We received a request to reset your password. Use this link to reset it:\n{reset_url}\n\n"
            "This link will expire in 1 hour.\n\n"
            "If you didn't request this reset, please ignore this email.\n"
        ),
    )


def render_welcome(
    *, user_name: str = "", login_url: str = "", product: str = "Course Platform"
) -> RenderedEmail:
    content_parts = [
        f"        <p>Hi {escape(user_name)}, your email address is verified and your account is ready.</p>",
        "        <p>Browse the course catalog and start learning today.</p>",
    ]
    if login_url:
        content_parts.append(_button(login_url, "Start Learning"))
    return RenderedEmail(
        subject="Welcome to Our Platform!",
        html=_page(
            title="Welcome",
            accent="#4ecdc4",
            heading=f"Welcome to {product}!",
            subheading="Your account is verified",
            content="\n".join(content_parts),
            product=product,
        ),
        text=(
            f"Welcome to {product}!\n\n"
            f"Hi {user_name}, your email address is verified and your account is ready.\n"
            + (f"\nStart learning: {login_url}\n" if login_url else "")
        ),
    )


TEMPLATES: dict[str, Callable[..., RenderedEmail]] = {
    "verification": render_verification,
    "password_reset": render_password_reset,
    "welcome": render_welcome,
}


def render_template(template_name: str, template_args: dict[str, Any]) -> RenderedEmail:
    """Render a named template; unknown names raise ``ValueError``."""
    renderer = TEMPLATES.get(template_name)
    if renderer is None:
        raise ValueError(f"Unknown email template: {template_name}")
    return renderer(**template_args)
