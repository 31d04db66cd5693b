"""Firebase Cloud Messaging transport."""

import asyncio
import logging
from typing import Optional

import firebase_admin
from firebase_admin import credentials, exceptions, messaging

from coinwatch.config import FirebaseSettings
from coinwatch.errors import FIREBASE_NOT_INITIALIZED, PushTransportError
from coinwatch.models import NotificationPayload
from coinwatch.notifications.base import PushTransport

logger = logging.getLogger(__name__)

APP_NAME = "coinwatch"
ANDROID_CHANNEL_ID = "price-alerts"
TOKEN_URI = "https://oauth2.googleapis.com/token"


def build_message(device_token: str, payload: NotificationPayload) -> messaging.Message:
    """Build the FCM message for a payload."""
    return messaging.Message(
        token=device_token,
        notification=messaging.Notification(
            title=payload.title,
            body=payload.body,
            image=payload.image_url,
        ),
        data=dict(payload.data),
        android=messaging.AndroidConfig(
            priority="high",
            notification=messaging.AndroidNotification(
                channel_id=ANDROID_CHANNEL_ID,
                priority="high",
            ),
        ),
        apns=messaging.APNSConfig(
            payload=messaging.APNSPayload(aps=messaging.Aps(sound="default", badge=1)),
        ),
    )


class FirebaseTransport(PushTransport):
    """Sends pushes through firebase_admin using service-account credentials."""

    def __init__(self, settings: FirebaseSettings):
        self.settings = settings
        self._app: Optional[firebase_admin.App] = None

    def initialize(self) -> None:
        if self._app is not None:
            return
        try:
            self._app = firebase_admin.get_app(APP_NAME)
            return
        except ValueError:
            pass

        cert = credentials.Certificate({
            "type": "service_account",
            "project_id": self.settings.project_id,
            "private_key": self.settings.private_key.replace("\\n", "\n"),
            "client_email": self.settings.client_email,
            "token_uri": TOKEN_URI,
        })
        self._app = firebase_admin.initialize_app(
            cert, {"projectId": self.settings.project_id}, name=APP_NAME
        )
        logger.info("Firebase initialized for project %s", self.settings.project_id)

    async def send(self, device_token: str, payload: NotificationPayload) -> str:
        if self._app is None:
            raise PushTransportError(FIREBASE_NOT_INITIALIZED)
        message = build_message(device_token, payload)
        try:
            # messaging.send is blocking
            return await asyncio.to_thread(messaging.send, message, app=self._app)
        except (exceptions.FirebaseError, ValueError) as e:
            raise PushTransportError(str(e)) from e
