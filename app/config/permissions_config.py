"""
Permissions and Roles Configuration
This config defines the global RBAC matrix: every permission code and the roles seeded at bootstrap.
Used by the seed script to populate/update roles and permissions.
"""

# Define resources and their actions
RESOURCES = {
    "user": {
        "actions": ["read", "create", "update", "write", "delete"],
        "description": "User management"
    },
    "plan": {
        "actions": ["read", "create", "update", "delete"],
        "description": "Plan management"
    },
    "task": {
        "actions": ["read", "create", "update", "delete"],
        "description": "Task management"
    },
    "role": {
        "actions": ["read", "manage"],
        "description": "Role management"
    },
    "permission": {
        "actions": ["read", "manage"],
        "description": "Permission management"
    },
    "system": {
        "actions": ["config", "monitor"],
        "description": "System administration"
    }
}

# Human readable descriptions where the generated "<Action> <resource>" is not enough
ACTION_DESCRIPTIONS = {
    "user:write": "Create or update users",
    "role:manage": "Create, update and delete roles",
    "permission:manage": "Create, update and delete permissions",
    "system:config": "Change system configuration",
    "system:monitor": "View system monitoring data"
}

# Role definitions. "*" grants every permission.
ROLE_DEFINITIONS = {
    "admin": {
        "name": "Administrator",
        "description": "Highest administrator with every permission",
        "is_system": True,
        "permissions": ["*"]
    },
    "user": {
        "name": "User",
        "description": "Regular user managing their own plans and tasks",
        "is_system": True,
        "permissions": [
            "plan:read", "plan:create", "plan:update", "plan:delete",
            "task:read", "task:create", "task:update", "task:delete"
        ]
    },
    "guest": {
        "name": "Guest",
        "description": "Read-only visitor",
        "is_system": True,
        "permissions": ["plan:read", "task:read"]
    },
    "moderator": {
        "name": "Moderator",
        "description": "Reviews user generated content",
        "is_system": False,
        "permissions": [
            "user:read",
            "plan:read", "plan:update", "plan:delete",
            "task:read", "task:update", "task:delete"
        ]
    }
}


def get_permission_matrix():
    """
    Returns a dictionary with all permissions and the seeded roles
    Format: {
        "permissions": [
            {"name": "Read user", "code": "user:read", "resource": "user", "action": "read", "description": "..."},
            ...
        ],
        "roles": [
            {
                "name": "Administrator",
                "code": "admin",
                "description": "...",
                "is_system": True,
                "permissions": ["permission:manage", "plan:create", ...]
            },
            ...
        ]
    }
    """
    permissions = []
    roles = []

    for resource, resource_config in RESOURCES.items():
        for action in resource_config["actions"]:
            code = f"{resource}:{action}"
            permissions.append({
                "name": f"{action.capitalize()} {resource}",
                "code": code,
                "resource": resource,
                "action": action,
                "description": ACTION_DESCRIPTIONS.get(code, f"{action.capitalize()} {resource}")
            })

    all_codes = [p["code"] for p in permissions]

    for code, role_config in ROLE_DEFINITIONS.items():
        if "*" in role_config["permissions"]:
            role_permissions = list(all_codes)
        else:
            role_permissions = [c for c in role_config["permissions"] if c in all_codes]

        roles.append({
            "name": role_config["name"],
            "code": code,
            "description": role_config["description"],
            "is_system": role_config["is_system"],
            "permissions": sorted(role_permissions)
        })

    return {
        "permissions": permissions,
        "roles": roles
    }


# Export the matrix for use in seed scripts
PERMISSION_MATRIX = get_permission_matrix()
