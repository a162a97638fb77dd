"""User management service."""

import hashlib
import logging
import secrets
import uuid
from typing import Dict, List, Optional

from roster.db.storage import KeyValueStorage
from .errors import AuthenticationError, NotFoundError, ValidationError
from .records import Role, User, load_records

logger = logging.getLogger(__name__)

USERS_KEY = "users"
SESSION_KEY = "user"
TOKENS_KEY = "apiTokens"


def hash_token(token: str) -> str:
    """Hash an API token using SHA256."""
    return hashlib.sha256(token.encode()).hexdigest()


class UserService:
    """Users, roles and the demo login session.

    At least one active manager must exist at all times; role, status and
    delete operations that would break this return False and change nothing.
    """

    def __init__(self, storage: KeyValueStorage):
        self.storage = storage

    # Queries

    def list_users(self, role: Optional[str] = None) -> List[User]:
        users = load_records(self.storage.load(USERS_KEY), User, "user")
        if role:
            users = [u for u in users if u.role == Role(role)]
        return users

    def get_user(self, user_id: str) -> Optional[User]:
        for user in self.list_users():
            if user.id == user_id:
                return user
        return None

    def get_user_by_email(self, email: str) -> Optional[User]:
        wanted = (email or "").strip().lower()
        for user in self.list_users():
            if user.email.lower() == wanted:
                return user
        return None

    def require_user(self, user_id: str) -> User:
        user = self.get_user(user_id)
        if not user:
            raise NotFoundError(f"User {user_id} not found")
        return user

    # Mutations

    def create_user(
        self,
        name: str,
        email: str,
        role: str = "employee",
        facility: str = None,
        is_active: bool = True,
    ) -> User:
        """
        Create a new user.

        Raises:
            ValidationError: if name or email is blank/invalid or the email is taken
        """
        name = (name or "").strip()
        email = (email or "").strip()
        if not name:
            raise ValidationError("Name is required")
        if not email or "@" not in email:
            raise ValidationError("A valid email address is required")

        with self.storage.lock:
            if self.get_user_by_email(email):
                raise ValidationError(f"Email {email} is already registered")

            user = User(
                id=uuid.uuid4().hex,
                name=name,
                email=email,
                role=Role(role),
                facility=(facility or "").strip() or None,
                is_active=is_active,
            )
            users = self.list_users()
            users.append(user)
            self._save(users)

        logger.info(f"Created user: {user.name} ({user.email}, {user.role.value})")
        return user

    def register_employee(self, name: str, email: str, password: str = None, facility: str = None) -> User:
        """Self-registration; always creates an active employee."""
        return self.create_user(name=name, email=email, role=Role.EMPLOYEE.value, facility=facility)

    def update_user_role(self, user_id: str, role: str) -> bool:
        """Change a user's role. Refuses to demote the last active manager."""
        new_role = Role(role)
        with self.storage.lock:
            users = self.list_users()
            user = self._find(users, user_id)
            if not user:
                return False
            if user.role == new_role:
                return True
            if new_role != Role.MANAGER and self._is_last_manager(users, user):
                logger.warning(f"Refused to demote {user.name}: last active manager")
                return False

            self._replace(users, user.revise(role=new_role))
            self._save(users)

        logger.info(f"Changed role of {user.name} to {new_role.value}")
        return True

    def update_user_status(self, user_id: str, is_active: bool) -> bool:
        """Activate or deactivate a user. Refuses to deactivate the last active manager."""
        with self.storage.lock:
            users = self.list_users()
            user = self._find(users, user_id)
            if not user:
                return False
            if user.is_active == is_active:
                return True
            if not is_active and self._is_last_manager(users, user):
                logger.warning(f"Refused to deactivate {user.name}: last active manager")
                return False

            self._replace(users, user.revise(is_active=is_active))
            self._save(users)

        logger.info(f"{'Activated' if is_active else 'Deactivated'} user {user.name}")
        return True

    def delete_user(self, user_id: str) -> bool:
        """
        Delete a user.

        Returns:
            False (store unchanged) if the user is missing or is the last active manager
        """
        with self.storage.lock:
            users = self.list_users()
            user = self._find(users, user_id)
            if not user:
                return False
            if self._is_last_manager(users, user):
                logger.warning(f"Refused to delete {user.name}: last active manager")
                return False

            self._save([u for u in users if u.id != user_id])

        logger.info(f"Deleted user {user.name} ({user.email})")
        return True

    # Session

    def authenticate(self, email: str, password: str = None) -> User:
        """
        Return the active user with this email.

        The password is accepted but not checked.

        Raises:
            AuthenticationError: if no active user has this email
        """
        user = self.get_user_by_email(email)
        if not user or not user.is_active:
            logger.warning(f"Failed login for {email}")
            raise AuthenticationError("Invalid credentials")
        return user

    def login(self, email: str, password: str = None) -> User:
        """Start the local session for the active user with this email."""
        user = self.authenticate(email, password)
        self.storage.save(SESSION_KEY, user.to_storage())
        logger.info(f"User logged in: {user.name} ({user.role.value})")
        return user

    def logout(self):
        if self.storage.delete(SESSION_KEY):
            logger.info("User logged out")

    def get_current_user(self) -> Optional[User]:
        """
        The logged-in user, refreshed from the user list.

        A session whose user was deleted or deactivated is ended.
        """
        raw = self.storage.load(SESSION_KEY)
        if raw is None:
            return None

        snapshot = load_records([raw], User, "session")
        if not snapshot:
            self.logout()
            return None

        user = self.get_user(snapshot[0].id)
        if not user or not user.is_active:
            self.logout()
            return None
        if user != snapshot[0]:
            self.storage.save(SESSION_KEY, user.to_storage())
        return user

    def require_current_user(self) -> User:
        user = self.get_current_user()
        if not user:
            raise AuthenticationError("Not logged in")
        return user

    # API tokens

    def issue_token(self, user: User) -> str:
        """
        Create a bearer token for ``user``.

        Only the SHA256 hash of the token is stored; the raw value is returned
        once and cannot be recovered.
        """
        token = secrets.token_urlsafe(32)
        with self.storage.lock:
            tokens = self._tokens()
            tokens[hash_token(token)] = user.id
            self.storage.save(TOKENS_KEY, tokens)

        logger.info(f"Issued API token for {user.name}")
        return token

    def resolve_token(self, token: str) -> Optional[User]:
        """
        The active user a token belongs to.

        Tokens of deleted or deactivated users are revoked.
        """
        if not token:
            return None

        user_id = self._tokens().get(hash_token(token))
        if user_id is None:
            return None

        user = self.get_user(user_id)
        if not user or not user.is_active:
            self.revoke_token(token)
            return None
        return user

    def revoke_token(self, token: str) -> bool:
        with self.storage.lock:
            tokens = self._tokens()
            if tokens.pop(hash_token(token or ""), None) is None:
                return False
            self.storage.save(TOKENS_KEY, tokens)

        logger.info("Revoked API token")
        return True

    # Helpers

    @staticmethod
    def _find(users: List[User], user_id: str) -> Optional[User]:
        return next((u for u in users if u.id == user_id), None)

    @staticmethod
    def _replace(users: List[User], updated: User):
        for index, user in enumerate(users):
            if user.id == updated.id:
                users[index] = updated

    @staticmethod
    def _is_last_manager(users: List[User], user: User) -> bool:
        if not user.is_manager:
            return False
        others = [u for u in users if u.id != user.id and u.is_manager and u.is_active]
        return not others

    def _save(self, users: List[User]):
        self.storage.save(USERS_KEY, [u.to_storage() for u in users])

    def _tokens(self) -> Dict[str, str]:
        tokens = self.storage.load(TOKENS_KEY, {})
        return tokens if isinstance(tokens, dict) else {}
