"""Tests for app.services.users against an in-memory SQLite database."""

import unittest
from datetime import UTC, datetime, timedelta
from unittest.mock import patch

from app.core.security import verify_password
from app.models.user import User, UserRole
from app.services.users import (
    EmailExistsError,
    UserNotFoundError,
    delete_user,
    get_user_by_email,
    get_user_by_id,
    list_users,
    update_current_user,
    update_user,
)
from tests.support import DEFAULT_PASSWORD, make_session_factory, make_user


class UsersServiceTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.session_factory = make_session_factory()
        self.db = self.session_factory()

    def tearDown(self) -> None:
        self.db.close()


class TestLookup(UsersServiceTestCase):
    def test_get_by_id_returns_row(self) -> None:
        user = make_user(self.session_factory, email="ada@example.com")
        found = get_user_by_id(self.db, user.id)
        self.assertEqual(found.email, "ada@example.com")
        self.assertIs(UserRole(found.role), UserRole.USER)
        self.assertIsNotNone(found.created_at)
        self.assertIsNotNone(found.updated_at)

    def test_get_by_id_missing_raises(self) -> None:
        with self.assertRaises(UserNotFoundError) as ctx:
            get_user_by_id(self.db, 999)
        self.assertEqual(ctx.exception.user_id, 999)

    def test_get_by_email_is_case_insensitive(self) -> None:
        make_user(self.session_factory, email="Ada@Example.com")
        self.assertIsNotNone(get_user_by_email(self.db, "  ADA@example.COM"))
        self.assertIsNone(get_user_by_email(self.db, "nobody@example.com"))


class TestUpdate(UsersServiceTestCase):
    def test_updates_fields_and_refreshes_updated_at(self) -> None:
        user = make_user(self.session_factory)
        before = get_user_by_id(self.db, user.id).updated_at
        later = datetime.now(UTC) + timedelta(seconds=5)
        with patch("app.services.users.datetime") as mock_datetime:
            mock_datetime.now.return_value = later
            updated = update_user(self.db, user.id, {"name": "Renamed"})
        self.assertEqual(updated.name, "Renamed")
        self.assertNotEqual(updated.updated_at, before)

    def test_email_conflict_with_other_user(self) -> None:
        make_user(self.session_factory, email="taken@example.com")
        user = make_user(self.session_factory, email="me@example.com")
        with self.assertRaises(EmailExistsError):
            update_user(self.db, user.id, {"email": "TAKEN@example.com"})

    def test_keeping_own_email_is_not_a_conflict(self) -> None:
        user = make_user(self.session_factory, email="me@example.com")
        updated = update_user(self.db, user.id, {"email": "me@example.com", "name": "Me"})
        self.assertEqual(updated.email, "me@example.com")

    def test_password_is_rehashed(self) -> None:
        user = make_user(self.session_factory)
        updated = update_user(self.db, user.id, {"password": "brand-new-pass"})
        self.assertNotEqual(updated.password_hash, "brand-new-pass")
        self.assertTrue(verify_password("brand-new-pass", updated.password_hash))
        self.assertFalse(verify_password(DEFAULT_PASSWORD, updated.password_hash))

    def test_id_and_created_at_are_ignored(self) -> None:
        user = make_user(self.session_factory)
        original = get_user_by_id(self.db, user.id)
        created_at = original.created_at
        updated = update_user(
            self.db,
            user.id,
            {"id": 12345, "created_at": datetime(2000, 1, 1, tzinfo=UTC), "name": "Still Me"},
        )
        self.assertEqual(updated.id, user.id)
        self.assertEqual(updated.created_at, created_at)

    def test_missing_user_raises(self) -> None:
        with self.assertRaises(UserNotFoundError):
            update_user(self.db, 404, {"name": "Ghost"})

    def test_self_update_never_changes_role(self) -> None:
        user = make_user(self.session_factory)
        updated = update_current_user(self.db, user.id, {"name": "Me", "role": UserRole.ADMIN})
        self.assertEqual(updated.role, UserRole.USER.value)

    def test_admin_update_changes_role(self) -> None:
        user = make_user(self.session_factory)
        updated = update_user(self.db, user.id, {"role": UserRole.ADMIN})
        self.assertEqual(updated.role, "admin")


class TestDelete(UsersServiceTestCase):
    def test_delete_removes_row(self) -> None:
        user = make_user(self.session_factory)
        delete_user(self.db, user.id)
        self.assertIsNone(self.db.get(User, user.id))

    def test_delete_missing_raises(self) -> None:
        with self.assertRaises(UserNotFoundError):
            delete_user(self.db, 31337)


class TestList(UsersServiceTestCase):
    def _seed(self, count: int) -> None:
        for i in range(count):
            make_user(
                self.session_factory,
                name=f"Person {i:02d}",
                email=f"person{i:02d}@example.com",
            )

    def test_second_page_of_twenty_five(self) -> None:
        self._seed(25)
        page = list_users(self.db, page=2, limit=10, sort_by="id", sort_order="asc")
        self.assertEqual(len(page.items), 10)
        self.assertEqual(page.total, 25)
        self.assertEqual(page.total_pages, 3)
        self.assertEqual(page.items[0].email, "person10@example.com")

    def test_last_page_is_partial(self) -> None:
        self._seed(25)
        page = list_users(self.db, page=3, limit=10)
        self.assertEqual(len(page.items), 5)

    def test_search_matching_nothing(self) -> None:
        self._seed(3)
        page = list_users(self.db, search="zzz-no-match")
        self.assertEqual(page.items, [])
        self.assertEqual(page.total, 0)
        self.assertEqual(page.total_pages, 0)

    def test_search_matches_name_or_email_case_insensitively(self) -> None:
        make_user(self.session_factory, name="Grace Hopper", email="grace@navy.mil")
        make_user(self.session_factory, name="Alan", email="alan.turing@example.com")
        make_user(self.session_factory, name="Someone", email="someone@example.com")
        by_name = list_users(self.db, search="HOPPER")
        self.assertEqual([u.email for u in by_name.items], ["grace@navy.mil"])
        by_email = list_users(self.db, search="Turing")
        self.assertEqual([u.name for u in by_email.items], ["Alan"])

    def test_search_wildcards_are_literal(self) -> None:
        make_user(self.session_factory, name="100% Real", email="real@example.com")
        make_user(self.session_factory, name="Other", email="other@example.com")
        page = list_users(self.db, search="%")
        self.assertEqual([u.name for u in page.items], ["100% Real"])

    def test_total_ignores_pagination_window(self) -> None:
        self._seed(12)
        page = list_users(self.db, page=1, limit=5, search="person")
        self.assertEqual(len(page.items), 5)
        self.assertEqual(page.total, 12)

    def test_sort_by_name_descending(self) -> None:
        self._seed(3)
        page = list_users(self.db, sort_by="name", sort_order="desc")
        self.assertEqual(
            [u.name for u in page.items], ["Person 02", "Person 01", "Person 00"]
        )

    def test_unknown_sort_column_uses_created_at(self) -> None:
        self._seed(2)
        page = list_users(self.db, sort_by="password_hash", sort_order="asc")
        self.assertEqual(len(page.items), 2)


if __name__ == "__main__":
    unittest.main()
