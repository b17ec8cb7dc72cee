"""Service interfaces and models shared by the test suite."""

from dataclasses import dataclass
from enum import Enum
from typing import Annotated

from pydantic import BaseModel

from reststub import (
    Aggregate,
    Body,
    Header,
    Page,
    Path,
    Query,
    delete,
    get,
    patch,
    post,
    put,
    service,
)


BASE_URL = "https://api.example.test/v1"


class User(BaseModel):
    id: int
    name: str
    active: bool = True


class UserStatus(str, Enum):
    ACTIVE = "active"
    DISABLED = "disabled"


@dataclass
class Money:
    amount: int
    currency: str


@service(base_url=BASE_URL, name="users")
class UsersApi:
    @get("/users/{id}")
    async def get_user(self, id: int) -> User: ...

    @get("/users")
    async def list_users(
        self,
        page: Annotated[int, Query()] = 0,
        size: Annotated[int, Query()] = 20,
        active: Annotated[bool | None, Query()] = None,
        status: Annotated[UserStatus | None, Query()] = None,
    ) -> Page[User]: ...

    @get("/users/search")
    async def search(
        self,
        q: str,
        tags: Annotated[list[str] | None, Query(name="tag")] = None,
        sort: Annotated[str | None, Query(default="name")] = None,
    ) -> list[User]: ...

    @post("/users")
    async def create_user(
        self,
        user: Annotated[User, Body()],
        trace: Annotated[str | None, Header("X-Trace-Id")] = None,
    ) -> User: ...

    @put("/users/{id}")
    async def replace_user(
        self, id: int, user: Annotated[User, Body()]
    ) -> User: ...

    @patch("/users/{id}")
    async def rename_user(
        self, id: int, user: Annotated[dict | None, Body()] = None
    ) -> User: ...

    @delete("/users/{id}")
    async def delete_user(self, id: int) -> None: ...

    @get("/users/stats/by-status")
    async def count_by_status(self) -> Aggregate: ...

    @get("/teams/{team}/members/{member_id}")
    async def team_member(
        self,
        team: str,
        user_id: Annotated[int, Path("member_id")],
    ) -> User: ...

    @post("/users/{id}/touch", idempotent=True, timeout=1.5)
    async def touch(self, id: int) -> None: ...

    @get("/users/by-email/{email}")
    async def find_by_email(self, email: str) -> User | None: ...


class BrokenPlaceholderApi:
    @get("/users/{id}")
    async def get_user(self, user_id: int) -> User: ...


class TwoBodiesApi:
    @post("/users")
    async def create(
        self,
        a: Annotated[User, Body()],
        b: Annotated[User, Body()],
    ) -> User: ...


class MissingVerbApi:
    @get("/ping")
    async def ping(self) -> None: ...

    async def undeclared(self) -> User: ...
