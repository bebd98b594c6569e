"""
Role/Permission Store

Explicit capability for role assignment and permission grants. Both are
idempotent upserts.
"""

# Roles a user can pick for themselves during onboarding
ROLES = {
    'owner': 'Owner',
    'manager': 'General / Property Manager',
    'front-office': 'Front Office (Reception & Concierge)',
    'reservations': 'Reservations Agent',
    'housekeeping': 'Housekeeping',
    'maintenance': 'Maintenance Technician',
    'accounting': 'Accountant / Finance',
    'cashier': 'POS Cashier',
}

# Granted to every provisioning user regardless of role
PLATFORM_PERMISSION = 'manage_kover_subscription'


class RoleStore:

    def assign_role(self, cur, user_id, role: str):
        cur.execute(
            '''INSERT INTO user_roles (user_id, role)
               VALUES (%s, %s)
               ON CONFLICT (user_id, role) DO NOTHING''',
            (str(user_id), role)
        )

    def grant_permission(self, cur, user_id, permission: str):
        cur.execute(
            '''INSERT INTO user_permissions (user_id, permission)
               VALUES (%s, %s)
               ON CONFLICT (user_id, permission) DO NOTHING''',
            (str(user_id), permission)
        )
