from app.models.activity_log import ActivityLog  # noqa: F401
from app.models.meta import PermissionMeta, RoleMeta  # noqa: F401
from app.models.rbac import Permission, Role, role_has_permissions, user_has_roles  # noqa: F401
from app.models.user import User  # noqa: F401
