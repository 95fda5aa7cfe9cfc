"""Session manager for the signed-in Dantec Market customer."""

import json
import logging
import os
from pathlib import Path
from typing import Optional

from .models import SessionData

logger = logging.getLogger(__name__)


class AuthManager:
    """Keeps track of the current customer and persists it between runs."""

    def __init__(self, session_file: Optional[str] = None) -> None:
        """
        Initialize the session manager.

        Args:
            session_file: Path to store session data. Defaults to ~/.dantec_session.json
        """
        if session_file is None:
            session_file = str(Path.home() / ".dantec_session.json")
        self.session_file = session_file
        self.session: SessionData = self._load_session()

    def _load_session(self) -> SessionData:
        """Load session data from file if it exists."""
        if os.path.exists(self.session_file):
            try:
                with open(self.session_file, "r") as f:
                    data = json.load(f)
                    session = SessionData(**data)
                    if session.is_authenticated:
                        logger.info(f"Loaded existing session from {self.session_file}")
                    return session
            except (json.JSONDecodeError, ValueError, TypeError) as e:
                # If file is corrupted, start fresh
                logger.warning(f"Could not load session: {e}")
        return SessionData()

    def _save_session(self) -> None:
        """Save session data to file."""
        try:
            with open(self.session_file, "w") as f:
                json.dump(self.session.model_dump(), f, default=str)
            os.chmod(self.session_file, 0o600)
        except OSError as e:
            logger.error(f"Could not save session: {e}")

    def login(self, user_id: int, user_email: Optional[str] = None) -> None:
        """
        Record the signed-in customer.

        Args:
            user_id: Customer ID used in every API request
            user_email: Customer email, kept for display
        """
        self.session = SessionData(
            user_id=user_id,
            user_email=user_email,
            is_authenticated=True,
        )
        self._save_session()
        logger.info(f"Logged in as user {user_id}")

    def logout(self) -> None:
        """Forget the current customer."""
        self.session = SessionData()
        if os.path.exists(self.session_file):
            try:
                os.remove(self.session_file)
                logger.info("Session cleared")
            except OSError as e:
                logger.warning(f"Could not delete session file: {e}")

    def is_authenticated(self) -> bool:
        """Check if a customer is signed in."""
        return self.session.is_authenticated and self.session.user_id is not None

    @property
    def user_id(self) -> Optional[int]:
        return self.session.user_id if self.is_authenticated() else None
