from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ChatStats:
    active_chats: int
    waiting_chats: int
    today_chats: int
    unread_messages: int

    def to_wire(self) -> dict[str, int]:
        return {
            "activeChats": self.active_chats,
            "waitingChats": self.waiting_chats,
            "todayChats": self.today_chats,
            "unreadMessages": self.unread_messages,
        }
