# Overview: Email/SMS notifier. Delivery is logged only; no provider is wired.

from __future__ import annotations

from flask import current_app


class Notifier:
    def send_email(self, to: str, subject: str, body: str) -> None:
        current_app.logger.info("email to=%s subject=%s body=%s", to, subject, body)

    def send_sms(self, to: str, body: str) -> None:
        current_app.logger.info("sms to=%s body=%s", to, body)


def get_notifier() -> Notifier:
    return current_app.extensions.get("notifier") or Notifier()


def send_otp(user, code: str, ttl_minutes: int) -> None:
    notifier = get_notifier()
    body = f"Your login code is {code}. It expires in {ttl_minutes} minutes."
    if user.phone:
        notifier.send_sms(user.phone, body)
    else:
        notifier.send_email(user.email, "Your login code", body)


def notify_reward_approved(user, task_title: str, amount: int) -> None:
    get_notifier().send_email(
        user.email,
        "Reward approved",
        f"Your claim for '{task_title}' was approved. {amount} points were added to your balance.",
    )


def notify_reward_rejected(user, task_title: str, notes: str | None = None) -> None:
    body = f"Your claim for '{task_title}' was not approved."
    if notes:
        body = f"{body} Note: {notes}"
    get_notifier().send_email(user.email, "Reward claim update", body)
