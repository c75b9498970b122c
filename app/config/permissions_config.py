"""
Roles and Section Access Configuration
This config defines the organizational roles a team member can hold and which
workspace sections each role unlocks.
Used by the role resolver (app.core.permissions) and by the /auth/me endpoint.
"""

# Admin roles, highest to lowest privilege
ROLE_HIERARCHY = [
    "super_admin",
    "national_admin",
    "state_admin",
    "county_admin",
    "city_admin",
]

# Roles that see every chapter (no chapter filter)
FULL_ACCESS_ROLES = ["super_admin", "national_admin"]

# Roles scoped to their chapter and all of its descendants
GEOGRAPHIC_ADMIN_ROLES = ["state_admin", "county_admin", "city_admin"]

ADMIN_ROLES = FULL_ACCESS_ROLES + GEOGRAPHIC_ADMIN_ROLES

_GEOGRAPHIC = ["national_admin", "state_admin", "county_admin", "city_admin"]

# Section -> roles allowed to open it. super_admin is implicitly allowed everywhere.
# Order matters: it is the order sections are listed in navigation.
SECTIONS = {
    "members": _GEOGRAPHIC + ["membership_coordinator", "data_manager"],
    "events": _GEOGRAPHIC + ["event_coordinator"],
    "communicate": _GEOGRAPHIC + ["communications_lead"],
    "chapters": list(_GEOGRAPHIC),
    "resources": _GEOGRAPHIC + ["content_creator"],
    "tasks": _GEOGRAPHIC + ["volunteer_manager"],
    "admin": ["super_admin", "national_admin"],
}


def get_section_matrix():
    """
    Returns a dictionary of section name -> allowed roles, with super_admin
    added to every section.
    Format: {
        "members": ["super_admin", "national_admin", ...],
        ...
    }
    """
    matrix = {}
    for section_name, section_roles in SECTIONS.items():
        roles = list(section_roles)
        if "super_admin" not in roles:
            roles.insert(0, "super_admin")
        matrix[section_name] = roles
    return matrix


# Export the matrix for the role resolver
SECTION_MATRIX = get_section_matrix()
