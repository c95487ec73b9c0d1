from __future__ import annotations

import logging
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Toast:
    title: str
    description: str = ""
    variant: str = "default"


@dataclass
class Notifier:
    toasts: list[Toast] = field(default_factory=list)
    redirect_to: str | None = None

    def toast(self, title: str, description: str = "", variant: str = "default") -> Toast:
        item = Toast(title=title, description=description, variant=variant)
        self.toasts.append(item)
        if variant == "destructive":
            logger.warning("%s: %s", title, description)
        else:
            logger.info("%s: %s", title, description)
        return item

    def redirect(self, url: str) -> None:
        self.redirect_to = url

    @property
    def last(self) -> Toast | None:
        return self.toasts[-1] if self.toasts else None
