"""Message generation and delivery QoS evaluation."""

from .codec import MessageDecodeError, decode_message, encode_message, message_to_dict
from .evaluator import evaluate
from .generator import MessageGenerator, RandomSourceError, generate
from .history import DeliveryHistory
from .models import QoSReport, TestMessage
from .session import ProbeSession, SessionStats

__all__ = [
    "DeliveryHistory",
    "MessageDecodeError",
    "MessageGenerator",
    "ProbeSession",
    "QoSReport",
    "RandomSourceError",
    "SessionStats",
    "TestMessage",
    "decode_message",
    "encode_message",
    "evaluate",
    "generate",
    "message_to_dict",
]
