"""Activity chat feed exports."""

from .service import list_messages, post_message

__all__ = [
	"list_messages",
	"post_message",
]
