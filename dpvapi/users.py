"""User accounts: key validation, creation, updates and profile comments."""

from __future__ import annotations

import copy
import itertools
import re
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Sequence

from dpvapi.description import fix_title, get_title, render

_ONLY_DIGITS = re.compile(r"[0-9]+")
_KEY = re.compile(r"[a-z0-9_-][a-z0-9_\-.]{2,29}")

MAX_NAME_LENGTH = 100
MAX_TITLE_LENGTH = 100
MAX_TEXT_LENGTH = 10000
ADMINISTRATOR = "administrator"


class UserError(ValueError):
    """Raised when a user operation is invalid or fails."""


@dataclass
class Comment:
    """A Markdown comment on a user's profile."""

    title: str = ""
    text: str = ""
    render: str = ""
    author: str = ""
    created: datetime | None = None


@dataclass
class User:
    """A user account."""

    key: str = ""
    name: str = ""
    type: str = ""
    information: dict[str, str] = field(default_factory=dict)
    comments: list[Comment] = field(default_factory=list)


def _byte_length(text: str) -> int:
    return len(text.encode("utf-8"))


def validate_key(username: str) -> None:
    """Check that a user key has the allowed length and characters."""
    length = _byte_length(username)
    if length < 3 or length > 30:
        raise UserError("username must be between 3 and 30 characters long")
    if not _KEY.fullmatch(username):
        raise UserError("key must contain a-z, 0-9, _, -, or . but may not start with a period")


def validate_custom_key(username: str) -> None:
    """Check a key chosen by a user, which must not consist of digits only."""
    if _ONLY_DIGITS.fullmatch(username):
        raise UserError("key cannot only contain digits")
    validate_key(username)


class UserRepository:
    """In-memory store of users; stored objects are copied in and out."""

    def __init__(self) -> None:
        self._users: dict[str, User] = {}
        self._lock = threading.Lock()
        self._next_key = itertools.count(1)

    def read(self, key: str) -> User:
        """Return a copy of the user with this key."""
        with self._lock:
            user = self._users.get(key)
            if user is None:
                raise UserError(f"user {key!r} not found")
            return copy.deepcopy(user)

    def create(self, user: User) -> str:
        """Store a new user, assigning a key if it has none, and return the key."""
        with self._lock:
            if not user.key:
                key = str(next(self._next_key))
                while key in self._users:
                    key = str(next(self._next_key))
                user.key = key
            elif user.key in self._users:
                raise UserError(f"user {user.key!r} already exists")
            self._users[user.key] = copy.deepcopy(user)
            return user.key

    def update(self, user: User) -> None:
        """Replace a stored user."""
        with self._lock:
            if user.key not in self._users:
                raise UserError(f"user {user.key!r} not found")
            self._users[user.key] = copy.deepcopy(user)

    def has(self, key: str) -> bool:
        """Tell whether a user with this key exists."""
        with self._lock:
            return key in self._users


def _prepare_comment(title: str, text: str) -> tuple[str, str, str]:
    text = fix_title(title, text)
    title = get_title(text)
    rendered = render(text)
    if not title:
        raise UserError("title cannot be empty")
    if _byte_length(title) > MAX_TITLE_LENGTH:
        raise UserError("title cannot be longer than 100 characters")
    if not text:
        raise UserError("text cannot be empty")
    if _byte_length(text) > MAX_TEXT_LENGTH:
        raise UserError("text cannot be longer than 10000 characters")
    return title, text, rendered


class UserService:
    """Operations on user accounts backed by a repository."""

    def __init__(self, repository: UserRepository, user_types: Sequence[str]) -> None:
        if not user_types:
            raise ValueError("at least one user type is required")
        self.repository = repository
        self.user_types = list(user_types)

    def _read(self, key: str) -> User:
        try:
            return self.repository.read(key)
        except UserError as exc:
            raise UserError(f"read user failed: {exc}") from exc

    def _save(self, user: User) -> None:
        try:
            self.repository.update(user)
        except UserError as exc:
            raise UserError(f"update user failed: {exc}") from exc

    def _check_type(self, user_type: str) -> None:
        if user_type not in self.user_types:
            raise UserError(
                f"invalid user type {user_type}, choose one of the following: {self.user_types}"
            )

    def exists(self, username: str) -> bool:
        """Tell whether a valid username is taken."""
        try:
            validate_key(username)
        except UserError as exc:
            raise UserError(f"invalid username: {exc}") from exc
        return self.repository.has(username)

    def create(self, key: str, name: str = "", user_type: str = "") -> str:
        """Create a user and return its key; administrators cannot be created."""
        try:
            validate_custom_key(key)
        except UserError as exc:
            raise UserError(f"invalid username: {exc}") from exc
        name = name or key
        if _byte_length(name) > MAX_NAME_LENGTH:
            raise UserError("name cannot be longer than 100 characters")
        user_type = user_type or self.user_types[0]
        self._check_type(user_type)
        if user_type == ADMINISTRATOR:
            raise UserError("cannot create administrator account")
        now = datetime.now().astimezone().isoformat(timespec="seconds")
        user = User(
            key=key,
            name=name,
            type=user_type,
            information={"created": now, "login": now},
        )
        try:
            return self.repository.create(user)
        except UserError as exc:
            raise UserError(f"create user failed: {exc}") from exc

    def update(self, key: str, name: str = "", user_type: str = "") -> None:
        """Change a user's name or type; empty values keep the current ones."""
        user = self._read(key)
        name = name or user.name
        if _byte_length(name) > MAX_NAME_LENGTH:
            raise UserError("name cannot be longer than 100 characters")
        user_type = user_type or user.type
        self._check_type(user_type)
        if user_type == ADMINISTRATOR and user_type != user.type:
            raise UserError("cannot update to administrator account")
        user.name = name
        user.type = user_type
        self._save(user)

    def add_comment(self, key: str, author: str, title: str, text: str) -> None:
        """Add a comment with a title not yet used on this user."""
        user = self._read(key)
        title, text, rendered = _prepare_comment(title, text)
        if any(comment.title == title for comment in user.comments):
            raise UserError("comment with same title already exists")
        user.comments.append(
            Comment(title=title, text=text, render=rendered, author=author, created=datetime.now())
        )
        self._save(user)

    def edit_comment(
        self, key: str, author: str, old_title: str, title: str, text: str
    ) -> None:
        """Replace title and text of a comment written by the given author."""
        user = self._read(key)
        title, text, rendered = _prepare_comment(title, text)
        target: Comment | None = None
        for comment in user.comments:
            if comment.title == old_title:
                target = comment
            elif comment.title == title:
                raise UserError("comment with same title already exists")
        if target is None:
            raise UserError("comment not found")
        if target.author != author:
            raise UserError("not authorized to edit comment")
        target.title = title
        target.text = text
        target.render = rendered
        self._save(user)

    def delete_comment(self, key: str, author: str, title: str) -> None:
        """Remove a comment written by the given author."""
        user = self._read(key)
        remaining: list[Comment] = []
        for comment in user.comments:
            if comment.title != title:
                remaining.append(comment)
            elif comment.author != author:
                raise UserError("not authorized to delete comment")
        if len(remaining) == len(user.comments):
            raise UserError("comment not found")
        user.comments = remaining
        self._save(user)