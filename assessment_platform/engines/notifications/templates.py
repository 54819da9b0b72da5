"""
Email templates keyed by outbox template key.

Each template turns the outbox payload into a subject, a plain-text body
and an HTML body.
"""

from dataclasses import dataclass
from html import escape
from typing import Any, Callable, Dict

from assessment_platform.engines.notifications.outbox import TemplateKey


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    text: str
    html: str


def _layout(brand: str, body: str, footer: str = "") -> str:
    return (
        "<div style=\"font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;\">"
        "<div style=\"background: #f8f9fa; padding: 20px; text-align: center;\">"
        f"<h1 style=\"color: #333; margin: 0;\">{escape(brand)}</h1></div>"
        f"<div style=\"padding: 30px 20px;\">{body}</div>"
        "<div style=\"background: #f8f9fa; padding: 15px; text-align: center; color: #666; font-size: 12px;\">"
        f"<p>{escape(brand)}</p>{footer}</div></div>"
    )


def _email_verification(ctx: Dict[str, Any], brand: str) -> RenderedEmail:
    name = ctx.get("full_name", "")
    otp = ctx.get("otp_code", "")
    minutes = ctx.get("expires_minutes", 5)
    text = (
        f"Hello {name}!\n\n"
        f"Your verification code is: {otp}\n\n"
        f"This code expires in {minutes} minutes. "
        "If you did not create an account, ignore this email.\n"
    )
    body = (
        f"<h2>Hello {escape(name)}!</h2>"
        "<p>Use this code to verify your email address:</p>"
        "<div style=\"text-align: center; background: #f0f4ff; padding: 20px;\">"
        f"<h1 style=\"color: #007bff; font-size: 32px; letter-spacing: 4px;\">{escape(otp)}</h1></div>"
        f"<p>This code expires in {minutes} minutes.</p>"
    )
    return RenderedEmail(f"Verify Your Email - {brand}", text, _layout(brand, body))


def _password_reset(ctx: Dict[str, Any], brand: str) -> RenderedEmail:
    name = ctx.get("full_name", "")
    url = ctx.get("reset_url", "")
    text = (
        f"Hello {name}!\n\n"
        f"Reset your password here: {url}\n\n"
        "The link expires in one hour. If you did not ask for a reset, ignore this email.\n"
    )
    body = (
        f"<h2>Hello {escape(name)}!</h2>"
        "<p>We received a request to reset your password.</p>"
        f"<p style=\"text-align: center;\"><a href=\"{escape(url, quote=True)}\" "
        "style=\"background: #007bff; color: white; padding: 12px 30px; text-decoration: none;\">"
        "Reset Password</a></p>"
        "<p>The link expires in one hour.</p>"
    )
    return RenderedEmail(f"Password Reset Request - {brand}", text, _layout(brand, body))


def _certificate_issued(ctx: Dict[str, Any], brand: str) -> RenderedEmail:
    name = ctx.get("full_name", "")
    level = ctx.get("level", "")
    score = ctx.get("score", 0)
    step = ctx.get("step", "")
    certificate_id = ctx.get("certificate_id", "")
    text = (
        f"Congratulations {name}!\n\n"
        f"You completed Step {step} with a score of {score}% and achieved level {level}.\n"
        "Your certificate is attached.\n\n"
        f"Certificate ID: {certificate_id}\n"
    )
    body = (
        f"<h2 style=\"color: #2c5282;\">Congratulations {escape(name)}!</h2>"
        f"<p>You completed Step {step} with a score of <strong>{score}%</strong>.</p>"
        f"<p style=\"font-size: 24px; text-align: center;\">Level achieved: <strong>{escape(str(level))}</strong></p>"
        "<p>Your certificate is attached to this email as a PDF.</p>"
    )
    footer = f"<p>Certificate ID: {escape(str(certificate_id))}</p>"
    return RenderedEmail(
        f"Your {brand} Certificate - {level} Level Achieved!",
        text,
        _layout(brand, body, footer),
    )


TEMPLATES: Dict[str, Callable[[Dict[str, Any], str], RenderedEmail]] = {
    TemplateKey.EMAIL_VERIFICATION: _email_verification,
    TemplateKey.PASSWORD_RESET: _password_reset,
    TemplateKey.CERTIFICATE_ISSUED: _certificate_issued,
}


def render(template_key: str, context: Dict[str, Any], brand: str) -> RenderedEmail:
    try:
        template = TEMPLATES[template_key]
    except KeyError:
        raise ValueError(f"Unknown notification template: {template_key}") from None
    return template(context or {}, brand)
