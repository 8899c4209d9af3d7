"""Route classification for tracked requests."""
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from activity_audit.models.activity import ActivityType

ADMIN_PREFIXES = ("/admin", "/api/admin", "/trpc/admin")

METHOD_TYPE_MAPPINGS = {
    "GET": ActivityType.VIEW,
    "POST": ActivityType.CREATE,
    "PUT": ActivityType.UPDATE,
    "PATCH": ActivityType.UPDATE,
    "DELETE": ActivityType.DELETE,
}

# Named actions that map to a more specific activity type than their HTTP method
ACTION_TYPE_MAPPINGS = {
    # Admin actions
    "admin.login": ActivityType.LOGIN,
    "admin.logout": ActivityType.LOGOUT,
    "admin.dashboard": ActivityType.PAGE_VIEW,
    "admin.users.list": ActivityType.VIEW,
    "admin.users.create": ActivityType.CREATE,
    "admin.users.update": ActivityType.UPDATE,
    "admin.users.delete": ActivityType.DELETE,
    "admin.users.export": ActivityType.EXPORT,
    "admin.roles.assign": ActivityType.ADMIN_ACTION,
    "admin.roles.remove": ActivityType.ADMIN_ACTION,
    "admin.permissions.grant": ActivityType.ADMIN_ACTION,
    "admin.permissions.revoke": ActivityType.ADMIN_ACTION,
    "admin.settings.update": ActivityType.SETTINGS_UPDATE,
    "admin.system.config": ActivityType.ADMIN_ACTION,
    "admin.impersonation.start": ActivityType.IMPERSONATION_START,
    "admin.impersonation.end": ActivityType.IMPERSONATION_END,

    # User actions
    "user.profile.update": ActivityType.PROFILE_UPDATE,
    "user.password.change": ActivityType.PASSWORD_CHANGE,
    "user.settings.update": ActivityType.SETTINGS_UPDATE,
    "user.file.upload": ActivityType.FILE_UPLOAD,
    "user.file.download": ActivityType.FILE_DOWNLOAD,
    "user.search": ActivityType.SEARCH,
}

# Path segment -> resource type; only the first two carry an ID segment
RESOURCE_SEGMENTS = (
    ("users", "user", True),
    ("roles", "role", True),
    ("permissions", "permission", False),
    ("settings", "setting", False),
)

ADMIN_PAGE_TITLES = {
    "dashboard": "Admin Dashboard",
    "users": "User Management",
    "roles": "Role Management",
    "permissions": "Permission Management",
    "settings": "System Settings",
    "analytics": "Analytics Dashboard",
    "logs": "System Logs",
    "reports": "Reports",
}

ADMIN_OPERATION_VERBS = {
    ActivityType.CREATE: "created",
    ActivityType.VIEW: "viewed",
    ActivityType.UPDATE: "updated",
    ActivityType.DELETE: "deleted",
}


@dataclass(frozen=True)
class Classification:
    """Activity type, description and target resource derived from a request."""

    activity_type: ActivityType
    description: str
    admin_panel: bool = False
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None


def is_admin_path(path: str) -> bool:
    return any(path == prefix or path.startswith(prefix + "/") for prefix in ADMIN_PREFIXES)


def is_admin_page(path: str, method: str) -> bool:
    """GET of an admin console page, as opposed to an admin API call."""
    return (
        (method or "").upper() == "GET"
        and (path == "/admin" or path.startswith("/admin/"))
    )


def admin_page_title(path: str) -> str:
    """
    Human readable title of an admin page.

    ``/admin/users/12`` is "User Management"; unknown pages are titled from
    their first segment, e.g. ``/admin/billing`` is "Admin Billing".
    """
    segments = [segment for segment in path.split("/") if segment]
    if len(segments) < 2:
        return "Admin Panel"
    page = segments[1]
    return ADMIN_PAGE_TITLES.get(page, f"Admin {page[:1].upper()}{page[1:]}")


def parse_resource(path: str) -> Tuple[Optional[str], Optional[str]]:
    """
    Resource type and ID addressed by a path.

    Examples:
        parse_resource("/api/admin/users/42")  # ("user", "42")
        parse_resource("/users/create")        # ("user", None)
        parse_resource("/api/settings/theme")  # ("setting", None)
        parse_resource("/api/products/1")      # (None, None)
    """
    segments = [segment for segment in path.split("/") if segment]
    for segment, resource_type, has_id in RESOURCE_SEGMENTS:
        if segment not in segments:
            continue
        resource_id = None
        if has_id:
            index = segments.index(segment)
            if index + 1 < len(segments) and segments[index + 1] != "create":
                resource_id = segments[index + 1]
        return resource_type, resource_id
    return None, None


def classify_activity(path: str, method: str, action_name: Optional[str] = None) -> Classification:
    """
    Derive the activity type for a request.

    Login and logout routes take precedence, then admin page views, then
    named actions, then the HTTP method. Requests touching users, roles,
    permissions or settings also carry the addressed resource.

    Args:
        path: Request path
        method: HTTP method (any case)
        action_name: Optional dotted action name, e.g. ``admin.users.export``

    Returns:
        Classification with type, description, admin panel flag and resource
    """
    method = (method or "").upper()
    admin_panel = is_admin_path(path)

    if "/login" in path and method == "POST":
        description = "Admin logged into admin panel" if admin_panel else "User logged in"
        return Classification(ActivityType.LOGIN, description, admin_panel)

    if "/logout" in path and method in ("POST", "DELETE"):
        description = "Admin logged out of admin panel" if admin_panel else "User logged out"
        return Classification(ActivityType.LOGOUT, description, admin_panel)

    if is_admin_page(path, method):
        return Classification(
            ActivityType.PAGE_VIEW,
            f"Admin viewed {admin_page_title(path)}",
            admin_panel,
            resource_type="admin_page",
        )

    resource_type, resource_id = parse_resource(path)

    if action_name and action_name in ACTION_TYPE_MAPPINGS:
        return Classification(
            ACTION_TYPE_MAPPINGS[action_name], action_name, admin_panel, resource_type, resource_id
        )

    activity_type = METHOD_TYPE_MAPPINGS.get(method, ActivityType.OTHER)
    description = f"{method} {path}"
    if admin_panel and resource_type and activity_type in ADMIN_OPERATION_VERBS:
        description = f"Admin {ADMIN_OPERATION_VERBS[activity_type]} {resource_type}"
        if resource_id:
            description += f" (ID: {resource_id})"
    return Classification(activity_type, description, admin_panel, resource_type, resource_id)


def should_track(path: str, exclude_paths: Iterable[str]) -> bool:
    """Whether a path is outside the excluded prefixes (health checks, static assets, ...)."""
    return not any(path.startswith(prefix) for prefix in exclude_paths if prefix)
