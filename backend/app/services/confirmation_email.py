from __future__ import annotations

"""Booking confirmation e-mail, sent once a booking is paid.

Best-effort companion to the WhatsApp confirmation: failures are logged by
the caller and never make the webhook task retry.
"""

import html
from typing import Any, Callable, Dict, Mapping, Optional

from starlette.concurrency import run_in_threadpool

from app.services.email import send_email_ses
from app.services.whatsapp.templates import format_booking_date

SUBJECT = "Confirmação de Reserva"

EmailSender = Callable[..., Dict[str, Any]]


def build_confirmation_email(booking: Mapping[str, Any]) -> Dict[str, str]:
    name = html.escape(str(booking.get("name") or ""))
    activity = html.escape(str(booking.get("activity") or ""))
    date = html.escape(format_booking_date(booking.get("date")))
    time = html.escape(str(booking.get("time") or ""))
    participants = html.escape(str(booking.get("participants") or ""))

    html_body = f"""
<h2>Olá, {name}!</h2>
<p>Recebemos sua reserva para a atividade <strong>{activity}</strong>.</p>
<p><strong>Data:</strong> {date} <br />
   <strong>Horário:</strong> {time} <br />
   <strong>Participantes:</strong> {participants}</p>
<p>Aguardamos você!</p>
""".strip()

    text_body = (
        f"Olá, {booking.get('name') or ''}!\n"
        f"Atividade: {booking.get('activity') or ''}\n"
        f"Data: {format_booking_date(booking.get('date'))}\n"
        f"Horário: {booking.get('time') or ''}\n"
        f"Participantes: {booking.get('participants') or ''}"
    )

    return {"subject": SUBJECT, "html_body": html_body, "text_body": text_body}


class ConfirmationEmailSender:
    def __init__(self, sender: Optional[EmailSender] = None) -> None:
        self._sender = sender or send_email_ses

    async def send(self, booking: Mapping[str, Any]) -> Dict[str, Any]:
        """Send the confirmation to booking["email"]; raises EmailSendError."""

        content = build_confirmation_email(booking)
        return await run_in_threadpool(
            self._sender,
            to_address=str(booking.get("email")),
            subject=content["subject"],
            html_body=content["html_body"],
            text_body=content["text_body"],
        )
