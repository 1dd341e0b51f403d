"""Static role and permission catalog.

``PERMISSION_CATEGORIES`` is the fixed category -> display label table used to
group permissions in the admin UI. ``DEFAULT_PERMISSIONS`` and
``DEFAULT_CORE_ROLES`` describe the baseline that the provisioning path
(``app.db.bootstrap.provision_core_rbac``) seeds; nothing in the request path
writes them.
"""

DEFAULT_CATEGORY = "general"

PERMISSION_CATEGORIES: dict[str, str] = {
    "dashboard": "Dashboard Access",
    "user_management": "User Management",
    "role_management": "Role & Permission Management",
    "system_settings": "System Settings",
    "academic_core": "Academic Management",
    "timetable_management": "Timetable Management",
    "infrastructure": "Infrastructure",
    "reports": "Reports",
    "personal_access": "Personal Access",
    "faculty_dashboard": "Faculty Dashboard",
    "faculty_students": "Faculty Student Management",
    "faculty_lecturers": "Faculty Lecturer Management",
    "faculty_units": "Faculty Unit Management",
    "faculty_enrollments": "Faculty Enrollment Management",
    "faculty_timetables": "Faculty Timetable Management",
    "faculty_reports": "Faculty Reports",
    "faculty_classes": "Faculty Class Management",
    "faculty_programs": "Faculty Program Management",
    "general": "General Permissions",
    "custom": "Custom Permissions",
}

CORE_PERMISSION_PREFIXES = (
    "view-",
    "manage-",
    "create-",
    "edit-",
    "delete-",
    "process-",
    "download-",
    "solve-",
)

_FACULTY_CATEGORY_KEYWORDS = (
    ("dashboard", "faculty_dashboard"),
    ("student", "faculty_students"),
    ("lecturer", "faculty_lecturers"),
    ("unit", "faculty_units"),
    ("enrollment", "faculty_enrollments"),
    ("timetable", "faculty_timetables"),
    ("report", "faculty_reports"),
    ("class", "faculty_classes"),
    ("program", "faculty_programs"),
)

_CATEGORY_KEYWORDS = (
    (("dashboard",), "dashboard"),
    (("user",), "user_management"),
    (("role", "permission"), "role_management"),
    (("setting",), "system_settings"),
    (("timetable", "exam"), "timetable_management"),
    (("classroom", "building", "group"), "infrastructure"),
    (("school", "program", "unit", "class", "student", "enrollment", "semester", "lecturer"), "academic_core"),
    (("report",), "reports"),
    (("own-",), "personal_access"),
    (("custom-",), "custom"),
)

DEFAULT_PERMISSIONS: tuple[str, ...] = (
    "view-dashboard",
    "view-users", "create-users", "edit-users", "delete-users",
    "view-roles", "create-roles", "edit-roles", "delete-roles",
    "view-permissions", "create-permissions", "edit-permissions", "delete-permissions",
    "view-schools", "create-schools", "edit-schools", "delete-schools",
    "view-programs", "create-programs", "edit-programs", "delete-programs",
    "view-units", "create-units", "edit-units", "delete-units", "assign-units",
    "view-classes", "create-classes", "edit-classes", "delete-classes",
    "view-students", "create-students", "edit-students", "delete-students",
    "view-enrollments", "create-enrollments", "edit-enrollments", "delete-enrollments",
    "view-semesters", "create-semesters", "edit-semesters", "delete-semesters", "activate-semesters",
    "view-class-timetables", "create-class-timetables", "edit-class-timetables", "delete-class-timetables",
    "view-exam-timetables", "create-exam-timetables", "edit-exam-timetables", "delete-exam-timetables",
    "view-lecturer-assignments", "create-lecturer-assignments",
    "edit-lecturer-assignments", "delete-lecturer-assignments",
    "view-classrooms", "create-classrooms", "edit-classrooms", "delete-classrooms",
    "view-buildings", "create-buildings", "edit-buildings", "delete-buildings",
    "view-groups", "create-groups", "edit-groups", "delete-groups",
    "view-reports", "generate-reports", "export-reports",
)

_FACULTY_ADMIN_PERMISSIONS: tuple[str, ...] = (
    "view-dashboard",
    "view-schools",
    "view-programs", "create-programs", "edit-programs", "delete-programs",
    "view-units", "create-units", "edit-units", "delete-units", "assign-units",
    "view-classes", "create-classes", "edit-classes", "delete-classes",
    "view-students", "create-students", "edit-students", "delete-students",
    "view-enrollments", "create-enrollments", "edit-enrollments", "delete-enrollments",
    "view-semesters", "create-semesters", "edit-semesters", "delete-semesters", "activate-semesters",
    "view-class-timetables", "create-class-timetables", "edit-class-timetables", "delete-class-timetables",
    "view-exam-timetables", "create-exam-timetables", "edit-exam-timetables", "delete-exam-timetables",
    "view-lecturer-assignments", "create-lecturer-assignments",
    "edit-lecturer-assignments", "delete-lecturer-assignments",
    "view-classrooms", "view-buildings", "view-groups", "create-groups", "edit-groups", "delete-groups",
    "view-reports", "generate-reports", "export-reports",
)

DEFAULT_CORE_ROLES: dict[str, dict] = {
    "Admin": {
        "description": "Full administrative access to every module",
        "permissions": DEFAULT_PERMISSIONS,
    },
    "Faculty Admin": {
        "description": "Manages academic records for a single faculty",
        "permissions": _FACULTY_ADMIN_PERMISSIONS,
    },
    "Exam Office": {
        "description": "Schedules and maintains exam timetables",
        "permissions": (
            "view-dashboard", "view-exam-timetables", "create-exam-timetables",
            "edit-exam-timetables", "delete-exam-timetables", "view-classrooms",
        ),
    },
    "Lecturer": {
        "description": "Teaching staff with read access to their classes",
        "permissions": ("view-dashboard", "view-classes", "view-students", "view-class-timetables"),
    },
    "Student": {
        "description": "Enrolled student with access to personal timetables",
        "permissions": ("view-dashboard", "view-enrollments", "view-class-timetables", "view-exam-timetables"),
    },
}


def category_label(category: str) -> str:
    return PERMISSION_CATEGORIES.get(category) or category.replace("_", " ").title()


def infer_category(permission_name: str) -> str:
    """Guess a UI category from a permission name, e.g. ``edit-users`` -> ``user_management``."""
    name = permission_name.lower()
    if "faculty-" in name:
        for keyword, category in _FACULTY_CATEGORY_KEYWORDS:
            if keyword in name:
                return category
    for keywords, category in _CATEGORY_KEYWORDS:
        if any(keyword in name for keyword in keywords):
            return category
    return DEFAULT_CATEGORY


def looks_core(permission_name: str) -> bool:
    return permission_name.startswith(CORE_PERMISSION_PREFIXES)


def describe_permission_name(permission_name: str) -> str:
    """Human readable description derived from a dashed permission name."""
    return " ".join(part.capitalize() for part in permission_name.split("-") if part)
