import logging

from errors import AuthenticationError, AuthorizationError, ConflictError, NotFoundError, PersistenceError, ValidationError
from models import ROLES, User
from storage import StorageManager
from utils import now_iso, simulate_latency, validate_email, validate_password

logger = logging.getLogger(__name__)


class AuthManager:
    """Single-session authentication over the user collection.

    Passwords are stored and compared as plaintext; this is a demo system.
    """

    def __init__(self, storage: StorageManager, delay: float = 0.0):
        self.storage = storage
        self.delay = delay
        # Resume a session persisted by an earlier run
        self.current_user = storage.get_current_user()

    def login(self, email: str, password: str, role: str) -> User:
        """Authenticate and start a session. Raises AuthenticationError with the reason."""
        simulate_latency(self.delay)
        if not email or not password or not role:
            raise ValidationError("All fields are required")
        if not validate_email(email):
            raise ValidationError("Please enter a valid email address")

        user = self.storage.get_user_by_email(email.strip().lower())
        if user is None:
            logger.warning(f"Login failed for {email}: unknown email")
            raise AuthenticationError("User not found. Please check your email or sign up.")
        if user.password != password:
            logger.warning(f"Login failed for {email}: wrong password")
            raise AuthenticationError("Invalid password")
        if user.role != role:
            logger.warning(f"Login failed for {email}: role mismatch")
            raise AuthenticationError("Invalid role selected")

        user.last_login = now_iso()
        self.storage.save_user(user)
        self.current_user = user
        self.storage.set_current_user(user)
        logger.info(f"User {user.email} logged in as {user.role}")
        return user

    def signup(self, name: str, email: str, password: str, role: str) -> User:
        """Create an account. Does not log the new user in."""
        simulate_latency(self.delay)
        if not name or not email or not password or not role:
            raise ValidationError("All fields are required")
        if not validate_email(email):
            raise ValidationError("Please enter a valid email address")
        if not validate_password(password):
            raise ValidationError("Password must be at least 6 characters long")
        if role not in ROLES:
            raise ValidationError("Role must be organizer or participant")

        email = email.strip().lower()
        if self.storage.get_user_by_email(email):
            raise ConflictError("An account with this email already exists")

        user = User(
            name=name.strip(),
            email=email,
            password=password,
            role=role,
            created_at=now_iso(),
            is_active=True,
        )
        if not self.storage.save_user(user):
            raise PersistenceError("Failed to create account. Please try again.")
        logger.info(f"User {email} registered with role {role}")
        return user

    def logout(self):
        if self.current_user:
            logger.info(f"User {self.current_user.email} logged out")
        self.current_user = None
        self.storage.logout()

    def get_current_user(self) -> User | None:
        return self.current_user

    def is_logged_in(self) -> bool:
        return self.current_user is not None

    def has_role(self, role: str) -> bool:
        return self.current_user is not None and self.current_user.role == role

    def is_organizer(self) -> bool:
        return self.has_role("organizer")

    def is_participant(self) -> bool:
        return self.has_role("participant")

    def require_login(self) -> User:
        if self.current_user is None:
            raise AuthenticationError("Not logged in")
        return self.current_user

    def require_role(self, role: str, message: str | None = None) -> User:
        user = self.require_login()
        if user.role != role:
            raise AuthorizationError(message or f"Only {role}s can perform this action")
        return user

    def reset_password(self, email: str) -> bool:
        """Simulated reset: nothing is sent, the request is only logged."""
        if not self.storage.get_user_by_email((email or "").strip().lower()):
            raise NotFoundError("User not found")
        logger.info(f"Password reset instructions sent to {email}")
        return True

    def update_profile(self, **updates) -> User:
        """Update the logged-in user's name, email or password."""
        user = self.require_login()
        email = updates.get("email")
        if email is not None:
            if not validate_email(email):
                raise ValidationError("Invalid email address")
            email = email.strip().lower()
            if email != user.email and self.storage.get_user_by_email(email):
                raise ConflictError("Email already in use")
            updates["email"] = email
        if "password" in updates and not validate_password(updates["password"]):
            raise ValidationError("Password must be at least 6 characters long")

        for key in ("name", "email", "password"):
            if updates.get(key) is not None:
                setattr(user, key, updates[key].strip() if key == "name" else updates[key])
        user.updated_at = now_iso()

        if not self.storage.save_user(user):
            raise PersistenceError("Failed to update profile")
        self.current_user = user
        self.storage.set_current_user(user)
        logger.info(f"Profile updated for {user.email}")
        return user
