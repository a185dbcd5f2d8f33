from __future__ import annotations

from dataclasses import dataclass
from html import escape
from typing import Protocol

RESET_SUBJECT = "Reset your FileMyTax password"


@dataclass(frozen=True, slots=True)
class ResetEmail:
    to: str
    reset_url: str
    subject: str = RESET_SUBJECT

    @property
    def html(self) -> str:
        return render_reset_html(self.reset_url)


class Notifier(Protocol):
    name: str

    async def send_reset_email(self, message: ResetEmail) -> None: ...


def render_reset_html(reset_url: str) -> str:
    url = escape(reset_url, quote=True)
    return f"""<!DOCTYPE html>
<html>
<body style="font-family:sans-serif;max-width:480px;margin:auto;padding:32px 16px;color:#222;">
  <h2 style="color:#1a7a4a;margin-bottom:8px;">{RESET_SUBJECT}</h2>
  <p>Click the button below to set a new password. This link expires in <strong>1 hour</strong>.</p>
  <a href="{url}" style="display:inline-block;margin:20px 0;padding:12px 28px;background:#1a7a4a;color:#fff;border-radius:6px;text-decoration:none;font-weight:700;">Reset Password</a>
  <p style="color:#888;font-size:0.85rem;">Or copy this link into your browser:<br/><a href="{url}" style="color:#1a7a4a;">{url}</a></p>
  <hr style="border:none;border-top:1px solid #eee;margin:24px 0;"/>
  <p style="color:#aaa;font-size:0.78rem;">If you did not request this, you can safely ignore this email.</p>
</body>
</html>
"""
