from datetime import datetime, timezone
from uuid import UUID


class InMemoryStore:
    def __init__(self) -> None:
        self.organizations: dict[UUID, dict] = {}
        self.users: dict[UUID, dict] = {}
        self.properties: dict[UUID, dict] = {}
        self.units: dict[UUID, dict] = {}
        self.transactions: dict[UUID, dict] = {}
        self.reminders: dict[UUID, dict] = {}
        self.cases: dict[UUID, dict] = {}
        self.appointments: dict[UUID, dict] = {}
        self.contractor_availability: dict[UUID, dict] = {}
        self.contractor_blackouts: dict[UUID, dict] = {}
        self.customers: dict[UUID, dict] = {}
        self.user_categories: dict[UUID, dict] = {}

    def clear(self) -> None:
        self.__init__()

    @staticmethod
    def now() -> datetime:
        return datetime.now(timezone.utc)


store = InMemoryStore()
