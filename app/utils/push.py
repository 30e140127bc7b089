import logging

logger = logging.getLogger(__name__)


def send_push(user_id: int, title: str, message: str, data: dict | None = None) -> bool:
    """
    Push transport is disabled, messages are written to the log.
    Replace with a real provider (Expo / FCM) when ready.
    """
    logger.info(f"[PUSH] To user #{user_id} | {title} | {message} | data={data}")
    return True
