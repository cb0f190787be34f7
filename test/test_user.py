"""
Unit tests for UserManager.
"""

import pytest

from tunebox.errors import InvalidArgument
from tunebox.user import UserManager


@pytest.fixture
def user_manager(temp_db):
    """Create a UserManager instance."""
    return UserManager(temp_db)


class TestUserManager:
    """Tests for UserManager."""

    def test_create_new_user(self, user_manager):
        """get_or_create_user creates a new user when not exists."""
        user = user_manager.get_or_create_user("user-123", "Alice")

        assert user.id == "user-123"
        assert user.display_name == "Alice"
        assert user.created_at is not None

    def test_get_existing_user(self, user_manager):
        """get_or_create_user returns existing user."""
        user1 = user_manager.get_or_create_user("user-123", "Alice")
        user2 = user_manager.get_or_create_user("user-123", "Alice")

        assert user1.id == user2.id
        assert user1.display_name == user2.display_name

    def test_update_display_name(self, user_manager):
        """get_or_create_user updates display_name when it changes."""
        user_manager.get_or_create_user("user-123", "Alice")

        user = user_manager.get_or_create_user("user-123", "Alice Smith")
        assert user.display_name == "Alice Smith"

    @pytest.mark.parametrize("user_id", ["", "   ", None])
    def test_blank_id_rejected(self, user_manager, user_id):
        """A caller identity must not be blank."""
        with pytest.raises(InvalidArgument):
            user_manager.get_or_create_user(user_id, "Nobody")

    def test_get_user_not_exists(self, user_manager):
        """get_user returns None for non-existent user."""
        assert user_manager.get_user("nonexistent-user") is None

    def test_user_persistence(self, temp_db):
        """Users persist across UserManager instances."""
        UserManager(temp_db).get_or_create_user("user-123", "Alice")

        user = UserManager(temp_db).get_user("user-123")
        assert user is not None
        assert user.display_name == "Alice"
