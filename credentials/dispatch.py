from flask import current_app

from utils.emailer import send_email


class EmailDispatcher:
    """Sends login codes by email. Returns ``(ok, error)`` like ``send_email``."""

    subject = "Your sign-in code"

    def send(self, recipient: str, code: str, expires_in_minutes: int):
        body = (
            f"Your sign-in code is: {code}\n\n"
            f"It is valid for {expires_in_minutes} minutes and can be used once.\n"
            "If you didn't request this, you can ignore this email."
        )
        return send_email(recipient, self.subject, body)


def get_dispatcher():
    return current_app.extensions.get("dispatcher") or EmailDispatcher()
