from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class SentNotification:
    recipient: str
    title: str
    body: str
    link: str


@dataclass
class StubNotifier:
    sent: list[SentNotification] = field(default_factory=list)

    def notify(self, *, recipient: str, title: str, body: str, link: str) -> None:
        self.sent.append(SentNotification(recipient=recipient, title=title, body=body, link=link))

    def titles(self) -> list[str]:
        return [item.title for item in self.sent]

    def for_recipient(self, recipient: str) -> list[SentNotification]:
        return [item for item in self.sent if item.recipient == recipient]
