# weam/models.py
# Table models mirror the pre-existing SQLite schema; nothing here migrates it.
from typing import Optional

from sqlmodel import Field, SQLModel

ROLE_ADMIN = "admin"
ROLE_USER = "user"
ROLES = (ROLE_ADMIN, ROLE_USER)

# projects.direction
OWED_TO_US = "нам должны"
WE_OWE = "мы должны"

# transactions.operationType
INCOME = "Доход"
EXPENSE = "Расход"
OPERATION_TYPES = (INCOME, EXPENSE)


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    login: str = Field(unique=True, index=True)
    password_hash: str
    role: str = Field(default=ROLE_USER)  # admin | user
    nickname: Optional[str] = None


class Project(SQLModel, table=True):
    """A contract section; `name` is "<contractor> / <project>"."""

    __tablename__ = "projects"

    id: Optional[int] = Field(default=None, primary_key=True)
    contractor: str = ""
    project: str = ""
    section: str = ""
    direction: str = ""  # OWED_TO_US | WE_OWE
    grouping: str = ""
    amount: float = 0
    note: str = ""
    start: str = ""  # YYYY-MM-DD or ''
    end: str = ""
    status: str = ""
    progress: int = 0  # 0..100
    user_id: Optional[int] = Field(
        default=None, foreign_key="users.id", ondelete="SET NULL"
    )
    name: str = Field(default="", index=True)


class Transaction(SQLModel, table=True):
    """
    Money movement against a project.
    Empty `date` means planned (forecast); a date means actual.
    `remainder` is optional in older databases; see Database.has_tx_remainder.
    """

    __tablename__ = "transactions"

    id: Optional[int] = Field(default=None, primary_key=True)
    responsible: str = ""  # users.login
    date: str = ""
    total: float = 0
    operationType: str  # INCOME | EXPENSE
    note: str = ""
    project_id: int = Field(foreign_key="projects.id", index=True)
    remainder: Optional[float] = None


USER_COLUMNS = ("id", "login", "password_hash", "role", "nickname")
PROJECT_COLUMNS = (
    "id",
    "contractor",
    "project",
    "section",
    "direction",
    "grouping",
    "amount",
    "note",
    "end",
    "status",
    "progress",
    "start",
    "user_id",
    "name",
)
TRANSACTION_COLUMNS = (
    "id",
    "responsible",
    "date",
    "total",
    "operationType",
    "note",
    "project_id",
)

REQUIRED_SCHEMA = {
    "users": USER_COLUMNS,
    "projects": PROJECT_COLUMNS,
    "transactions": TRANSACTION_COLUMNS,
}
