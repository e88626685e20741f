"""
User directory and role permissions.

Holds the accounts that may log in and the capability set each role
grants. Permissions are copied into the session at login and do not
change for the session's lifetime.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from escrow_auth.config import Settings, get_settings
from escrow_auth.services.passwords import hash_password, verify_password

logger = logging.getLogger(__name__)


class UserRole(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    CHECKER = "checker"
    MAKER = "maker"


class Permission(str, Enum):
    # User management
    CREATE_USER = "create_user"
    READ_USER = "read_user"
    UPDATE_USER = "update_user"
    DELETE_USER = "delete_user"

    # Transactions
    CREATE_TRANSACTION = "create_transaction"
    READ_TRANSACTION = "read_transaction"
    UPDATE_TRANSACTION = "update_transaction"
    DELETE_TRANSACTION = "delete_transaction"
    APPROVE_TRANSACTION = "approve_transaction"

    # Projects
    CREATE_PROJECT = "create_project"
    READ_PROJECT = "read_project"
    UPDATE_PROJECT = "update_project"
    DELETE_PROJECT = "delete_project"

    # Payments
    CREATE_PAYMENT = "create_payment"
    READ_PAYMENT = "read_payment"
    UPDATE_PAYMENT = "update_payment"
    DELETE_PAYMENT = "delete_payment"
    APPROVE_PAYMENT = "approve_payment"

    # Reports
    READ_REPORTS = "read_reports"
    EXPORT_REPORTS = "export_reports"

    # System administration
    SYSTEM_CONFIG = "system_config"
    AUDIT_LOGS = "audit_logs"
    SECURITY_SETTINGS = "security_settings"


ROLE_PERMISSIONS: dict[UserRole, frozenset[Permission]] = {
    UserRole.ADMIN: frozenset(Permission),
    UserRole.MANAGER: frozenset(
        {
            Permission.READ_USER,
            Permission.UPDATE_USER,
            Permission.CREATE_TRANSACTION,
            Permission.READ_TRANSACTION,
            Permission.UPDATE_TRANSACTION,
            Permission.APPROVE_TRANSACTION,
            Permission.CREATE_PROJECT,
            Permission.READ_PROJECT,
            Permission.UPDATE_PROJECT,
            Permission.CREATE_PAYMENT,
            Permission.READ_PAYMENT,
            Permission.UPDATE_PAYMENT,
            Permission.APPROVE_PAYMENT,
            Permission.READ_REPORTS,
            Permission.EXPORT_REPORTS,
            Permission.AUDIT_LOGS,
        }
    ),
    UserRole.MAKER: frozenset(
        {
            Permission.READ_TRANSACTION,
            Permission.CREATE_TRANSACTION,
            Permission.UPDATE_TRANSACTION,
            Permission.READ_PROJECT,
            Permission.CREATE_PROJECT,
            Permission.UPDATE_PROJECT,
            Permission.READ_PAYMENT,
            Permission.CREATE_PAYMENT,
        }
    ),
    UserRole.CHECKER: frozenset(
        {
            Permission.READ_TRANSACTION,
            Permission.READ_PROJECT,
            Permission.READ_PAYMENT,
            Permission.READ_REPORTS,
        }
    ),
}


def get_role_permissions(role: UserRole | str) -> list[str]:
    """Sorted permission names for a role; unknown roles get none."""
    try:
        role = UserRole(role)
    except ValueError:
        return []
    return sorted(p.value for p in ROLE_PERMISSIONS[role])


@dataclass
class UserAccount:
    id: str
    username: str
    email: str
    role: UserRole
    password_hash: str
    is_active: bool = True

    @property
    def permissions(self) -> list[str]:
        return get_role_permissions(self.role)


class UserDirectory:
    """In-memory account lookup keyed by username."""

    def __init__(self):
        self._users: dict[str, UserAccount] = {}

    def add_user(
        self,
        user_id: str,
        username: str,
        email: str,
        role: UserRole | str,
        password: str,
        is_active: bool = True,
    ) -> UserAccount:
        account = UserAccount(
            id=user_id,
            username=username,
            email=email,
            role=UserRole(role),
            password_hash=hash_password(password),
            is_active=is_active,
        )
        self._users[username] = account
        return account

    def get(self, username: str) -> Optional[UserAccount]:
        return self._users.get(username)

    def authenticate(self, username: str, password: str) -> Optional[UserAccount]:
        """
        Return the account for valid, active credentials, None otherwise.

        Unknown user, wrong password and disabled account are not
        distinguished to the caller.
        """
        account = self._users.get(username)
        if account is None or not verify_password(password, account.password_hash):
            return None
        if not account.is_active:
            logger.warning("Login attempt for disabled account %s", username)
            return None
        return account

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "UserDirectory":
        """Directory seeded with the bootstrap admin, if one is configured."""
        settings = settings or get_settings()
        directory = cls()
        if settings.bootstrap_admin_password:
            directory.add_user(
                user_id="1",
                username=settings.bootstrap_admin_username,
                email=settings.bootstrap_admin_email,
                role=UserRole.ADMIN,
                password=settings.bootstrap_admin_password,
            )
        else:
            logger.warning("No bootstrap admin password set; no account can log in")
        return directory
