from __future__ import annotations

"""AWS SES transport for booking e-mails."""

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)


class EmailSendError(Exception):
    """SES is not configured or rejected the message."""


@dataclass(frozen=True)
class SesConfig:
    region: str
    access_key_id: str
    secret_access_key: str
    from_email: str

    @classmethod
    def from_env(cls) -> "SesConfig":
        names = {
            "region": "AWS_REGION",
            "access_key_id": "AWS_ACCESS_KEY_ID",
            "secret_access_key": "AWS_SECRET_ACCESS_KEY",
            "from_email": "AWS_SES_FROM_EMAIL",
        }
        values = {field: os.environ.get(env) or "" for field, env in names.items()}
        missing = [names[field] for field, value in values.items() if not value]
        if missing:
            raise EmailSendError(f"SES not configured, missing: {', '.join(missing)}")
        return cls(**values)

    def client(self):
        return boto3.client(
            "ses",
            region_name=self.region,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
        )


def send_email_ses(
    *,
    to_address: str,
    subject: str,
    html_body: str,
    text_body: Optional[str] = None,
    config: Optional[SesConfig] = None,
) -> Dict[str, Any]:
    """Send one e-mail through SES and return the API response.

    Blocking (boto3); async callers run it in a thread pool.
    """

    ses = config or SesConfig.from_env()

    body: Dict[str, Any] = {"Html": {"Data": html_body, "Charset": "UTF-8"}}
    if text_body:
        body["Text"] = {"Data": text_body, "Charset": "UTF-8"}

    try:
        resp = ses.client().send_email(
            Source=ses.from_email,
            Destination={"ToAddresses": [to_address]},
            Message={"Subject": {"Data": subject, "Charset": "UTF-8"}, "Body": body},
        )
    except (ClientError, BotoCoreError) as exc:
        logger.error("SES send_email to %s failed: %s", to_address, exc, exc_info=True)
        raise EmailSendError(str(exc)) from exc

    logger.info("SES send_email ok: to=%s MessageId=%s", to_address, resp.get("MessageId"))
    return resp
