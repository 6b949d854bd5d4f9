from enum import Enum


class ProjectRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    EDITOR = "editor"
    VIEWER = "viewer"

    @property
    def label(self) -> str:
        return self.value.capitalize()

    def can_manage_team(self) -> bool:
        return self in (ProjectRole.OWNER, ProjectRole.ADMIN)

    def can_manage_settings(self) -> bool:
        return self in (ProjectRole.OWNER, ProjectRole.ADMIN)

    def can_edit_records(self) -> bool:
        return self in (ProjectRole.OWNER, ProjectRole.ADMIN, ProjectRole.EDITOR)

    def can_delete_project(self) -> bool:
        return self is ProjectRole.OWNER

    def can_view_tables(self) -> bool:
        return True

    @classmethod
    def assignable(cls):
        """Role yang boleh diberikan ke member (owner tidak)."""
        return [cls.ADMIN, cls.EDITOR, cls.VIEWER]
