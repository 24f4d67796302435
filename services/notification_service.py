"""
Notification Service Module

This module handles the push-notification side channel: it keeps this
device's push token and registers or unregisters it with the backend
when the session starts or ends. Failures here never affect the session.
"""

import uuid
from typing import Optional

from config import settings
from data.protocols import KeyValueStore
from utils.exceptions import PersistenceError
from utils.logger import get_logger, mask_token

logger = get_logger(__name__)


class PushNotificationService:
    """Registers this device for push notifications with the backend."""

    def __init__(
        self,
        api_client,
        store: KeyValueStore,
        platform: Optional[str] = None,
        device_token: Optional[str] = None,
        enabled: Optional[bool] = None,
        token_key: Optional[str] = None
    ):
        """
        Initialize the notification service.

        Args:
            api_client: ApiClient used for the register/unregister calls
            store: Persistent store for a generated device token
            platform: Device platform reported to the backend
            device_token: Fixed push token; generated and persisted when omitted
            enabled: Whether registration is attempted at all
            token_key: Storage key for the generated device token
        """
        self.api_client = api_client
        self.store = store
        self.platform = platform or settings.DEVICE_PLATFORM
        self.enabled = settings.ENABLE_NOTIFICATIONS if enabled is None else enabled
        self.token_key = token_key or settings.STORAGE_KEY_DEVICE_TOKEN
        self._device_token = device_token or settings.DEVICE_PUSH_TOKEN

    async def get_device_token(self) -> str:
        """
        Return this device's push token, creating and persisting one if needed.

        Returns:
            str: The device push token.
        """
        if self._device_token:
            return self._device_token

        try:
            stored = await self.store.get_item(self.token_key)
        except PersistenceError as e:
            logger.warning(f"Could not read device token: {e}")
            stored = None

        if stored:
            self._device_token = stored
            return stored

        self._device_token = uuid.uuid4().hex
        try:
            await self.store.set_item(self.token_key, self._device_token)
        except PersistenceError as e:
            logger.warning(f"Could not persist device token: {e}")
        logger.info(f"Generated device push token {mask_token(self._device_token)}")
        return self._device_token

    async def register_device(self) -> bool:
        """
        Register the device token for the signed-in user.

        Returns:
            bool: True if the backend accepted the registration.
        """
        if not self.enabled:
            return False
        try:
            device_token = await self.get_device_token()
            result = await self.api_client.register_notification_token(device_token, self.platform)
        except Exception as e:
            logger.error(f"Failed to register device token: {e}", exc_info=True)
            return False

        if not result.success:
            logger.error(f"Failed to register device token: {result.message}")
            return False
        logger.info("Device registered for notifications")
        return True

    async def unregister_device(self, auth_token: Optional[str] = None) -> bool:
        """
        Unregister the device token.

        Args:
            auth_token: Session token to authenticate the call with.

        Returns:
            bool: True if the backend accepted the removal.
        """
        if not self.enabled:
            return False
        try:
            device_token = await self.get_device_token()
            result = await self.api_client.unregister_notification_token(
                device_token, self.platform, auth_token=auth_token
            )
        except Exception as e:
            logger.error(f"Failed to unregister device token: {e}", exc_info=True)
            return False

        if not result.success:
            logger.error(f"Failed to unregister device token: {result.message}")
            return False
        logger.info("Device unregistered from notifications")
        return True
