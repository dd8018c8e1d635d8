"""Point-to-point WebRTC signaling relay.

Offers, answers and ICE candidates are forwarded to the named target only.
Payloads are opaque: they are never parsed, validated or modified here.
"""

from typing import Any, List

from logging_config import get_logger
from registry import ConnectionRegistry, Delivery

logger = get_logger(__name__)

# event name -> payload field carrying the opaque blob
SIGNAL_KINDS = {
    "offer": "offer",
    "answer": "answer",
    "ice-candidate": "candidate",
}


class SignalingRelay:
    def __init__(self, registry: ConnectionRegistry):
        self.registry = registry

    def relay(self, kind: str, sender_connection_id: str, target_connection_id: str, payload: Any) -> List[Delivery]:
        if self.registry.get(target_connection_id) is None:
            # Clients time out unanswered offers on their own
            logger.debug(f"Dropped {kind} from {sender_connection_id}: target {target_connection_id} is gone")
            return []

        identity = self.registry.identity_of(sender_connection_id)
        envelope = {
            SIGNAL_KINDS[kind]: payload,
            "sender": sender_connection_id,
            "userId": identity.user_id if identity else None,
            "username": identity.username if identity else None,
        }
        logger.debug(f"Relaying {kind} from {sender_connection_id} to {target_connection_id}")
        return [Delivery(target_connection_id, kind, envelope)]
